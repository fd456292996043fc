import unittest

from vtc_backend.rbac_module.models import AppRole, AuditLog, Notification, RolePermission, User
from vtc_backend.rbac_module.services import seed_defaults

from .base import PASSWORD, ApiTestCase


class AuthTests(ApiTestCase):
    def test_login_returns_token_usable_for_me(self):
        response = self.client.post(
            "/api/v1/auth/login", json={"email": self.admin.email.upper(), "password": PASSWORD}
        )
        self.assertEqual(response.status_code, 200, response.text)
        token = response.json()["access_token"]
        self.assertEqual(response.json()["role"], AppRole.ORGANIZATION_ADMIN.value)

        me = self.client.get("/api/v1/me", headers={"Authorization": f"Bearer {token}"})
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.json()["email"], self.admin.email)

    def test_login_rejects_wrong_password(self):
        response = self.client.post("/api/v1/auth/login", json={"email": self.admin.email, "password": "wrong-pass"})
        self.assertError(response, 401, "Invalid credentials")

    def test_missing_or_malformed_token(self):
        self.assertError(self.client.get("/api/v1/me"), 401)
        self.assertError(self.client.get("/api/v1/me", headers={"Authorization": "Basic abc"}), 401, "Invalid auth scheme")
        self.assertError(self.client.get("/api/v1/me", headers={"Authorization": "Bearer nope"}), 401, "Invalid token")

    def test_deactivated_user_is_rejected(self):
        clerk = self.make_user(AppRole.REGISTRATION_OFFICER)
        headers = self.auth(clerk)
        clerk.is_active = False
        self.db.commit()
        self.assertError(self.client.get("/api/v1/me", headers=headers), 401)

    def test_change_password_clears_reset_flag(self):
        self.admin.password_reset_required = True
        self.db.commit()
        response = self.client.post(
            "/api/v1/auth/change-password",
            json={"current_password": PASSWORD, "new_password": "NewPassword@1"},
            headers=self.auth(self.admin),
        )
        self.assertEqual(response.status_code, 200, response.text)
        self.assertFalse(response.json()["password_reset_required"])


class UserManagementTests(ApiTestCase):
    def test_org_admin_creates_user_pinned_to_own_organization(self):
        other = self.make_organization("VTC2", "vtc2.ac.test", "W")
        response = self.client.post(
            "/api/v1/functions/create-user",
            json={
                "email": "Trainer@Example.com",
                "password": PASSWORD,
                "role": AppRole.TRAINER.value,
                "organization_id": other.id,
            },
            headers=self.auth(self.admin),
        )
        self.assertEqual(response.status_code, 200, response.text)
        user = response.json()["user"]
        self.assertEqual(user["email"], "trainer@example.com")
        self.assertEqual(user["organization_id"], self.org.id)

    def test_duplicate_email_conflicts(self):
        payload = {"email": "dup@example.com", "password": PASSWORD, "role": AppRole.TRAINER.value}
        self.client.post("/api/v1/functions/create-user", json=payload, headers=self.auth(self.admin))
        response = self.client.post("/api/v1/functions/create-user", json=payload, headers=self.auth(self.admin))
        self.assertError(response, 409, "already exists")

    def test_only_super_admin_creates_super_admin(self):
        payload = {"email": "root2@example.com", "password": PASSWORD, "role": AppRole.SUPER_ADMIN.value}
        response = self.client.post("/api/v1/functions/create-user", json=payload, headers=self.auth(self.admin))
        self.assertError(response, 403)

        root = self.make_user(AppRole.SUPER_ADMIN)
        response = self.client.post("/api/v1/functions/create-user", json=payload, headers=self.auth(root))
        self.assertEqual(response.status_code, 200, response.text)

    def test_non_admin_cannot_create_users(self):
        trainer = self.make_user(AppRole.TRAINER)
        response = self.client.post(
            "/api/v1/functions/create-user",
            json={"email": "x@example.com", "password": PASSWORD, "role": AppRole.TRAINER.value},
            headers=self.auth(trainer),
        )
        self.assertError(response, 403, "Only admins can create users")

    def test_unknown_role_is_rejected(self):
        response = self.client.post(
            "/api/v1/functions/create-user",
            json={"email": "x@example.com", "password": PASSWORD, "role": "wizard"},
            headers=self.auth(self.admin),
        )
        self.assertError(response, 400, "Unknown role: wizard")

    def test_update_user_deactivates_and_audits(self):
        trainer = self.make_user(AppRole.TRAINER)
        response = self.client.post(
            "/api/v1/functions/update-user",
            json={"userId": trainer.id, "active": False, "phone": "0711"},
            headers=self.auth(self.admin),
        )
        self.assertEqual(response.status_code, 200, response.text)
        self.assertFalse(response.json()["user"]["is_active"])

        entry = self.db.query(AuditLog).filter(AuditLog.action == "user_updated").one()
        self.assertEqual(entry.record_id, str(trainer.id))
        self.assertTrue(entry.old_data["active"])

        response = self.client.post(
            "/api/v1/functions/update-user",
            json={"userId": trainer.id, "active": True},
            headers=self.auth(self.admin),
        )
        self.assertTrue(response.json()["user"]["is_active"])

    def test_update_user_in_other_organization_is_forbidden(self):
        other = self.make_organization("VTC2", "vtc2.ac.test", "W")
        outsider = self.make_user(AppRole.TRAINER, organization=other)
        response = self.client.post(
            "/api/v1/functions/update-user",
            json={"userId": outsider.id, "firstname": "Changed"},
            headers=self.auth(self.admin),
        )
        self.assertError(response, 403, "your organization")

    def test_org_admin_cannot_touch_super_admin(self):
        root = self.make_user(AppRole.SUPER_ADMIN)
        root.organization_id = self.org.id
        self.db.commit()
        response = self.client.post(
            "/api/v1/functions/update-user",
            json={"userId": root.id, "firstname": "Changed"},
            headers=self.auth(self.admin),
        )
        self.assertError(response, 403, "Cannot update super admin users")

    def test_admin_cannot_deactivate_self(self):
        response = self.client.post(
            "/api/v1/functions/update-user",
            json={"userId": self.admin.id, "active": False},
            headers=self.auth(self.admin),
        )
        self.assertError(response, 400, "deactivate your own account")

    def test_bulk_role_assignment(self):
        first = self.make_user(AppRole.VIEWER, email="a@example.com")
        second = self.make_user(AppRole.VIEWER, email="b@example.com")
        response = self.client.post(
            "/api/v1/users/bulk-role",
            json={"user_ids": [first.id, second.id], "role_code": AppRole.TRAINER.value},
            headers=self.auth(self.admin),
        )
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json()["assigned"], 2)
        self.assertEqual(self.reload(User, first.id).role, AppRole.TRAINER.value)


class RoleAndPermissionTests(ApiTestCase):
    def test_permission_matrix_gates_module_access(self):
        viewer = self.make_user(AppRole.VIEWER)
        self.assertError(self.client.get("/api/v1/fee-types", headers=self.auth(viewer)), 403)

        response = self.client.put(
            "/api/v1/permissions",
            json={"role_code": AppRole.VIEWER.value, "module_code": "fee_management", "can_view": True},
            headers=self.auth(self.admin),
        )
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(self.client.get("/api/v1/fee-types", headers=self.auth(viewer)).status_code, 200)

    def test_permission_for_admin_role_is_refused(self):
        response = self.client.put(
            "/api/v1/permissions",
            json={"role_code": AppRole.ADMIN.value, "module_code": "reports", "can_view": True},
            headers=self.auth(self.admin),
        )
        self.assertError(response, 400, "Admin roles")

    def test_permission_rows_stay_inside_their_organization(self):
        other = self.make_organization("VTC2", "vtc2.ac.test", "W")
        other_admin = self.make_user(AppRole.ORGANIZATION_ADMIN, organization=other)
        response = self.client.put(
            "/api/v1/permissions",
            json={"role_code": AppRole.VIEWER.value, "module_code": "fee_management", "can_view": True},
            headers=self.auth(other_admin),
        )
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json()["organization_id"], other.id)

        local_viewer = self.make_user(AppRole.VIEWER)
        other_viewer = self.make_user(AppRole.VIEWER, organization=other)
        self.assertError(self.client.get("/api/v1/fee-types", headers=self.auth(local_viewer)), 403)
        self.assertEqual(self.client.get("/api/v1/fee-types", headers=self.auth(other_viewer)).status_code, 200)

        listed = self.client.get("/api/v1/permissions", headers=self.auth(self.admin))
        self.assertEqual(listed.json(), [])
        response = self.client.delete(f"/api/v1/permissions/{response.json()['id']}", headers=self.auth(self.admin))
        self.assertError(response, 403)

    def test_organization_row_overrides_default(self):
        root = self.make_user(AppRole.SUPER_ADMIN)
        response = self.client.put(
            "/api/v1/permissions",
            json={"role_code": AppRole.VIEWER.value, "module_code": "fee_management", "can_view": True},
            headers=self.auth(root),
        )
        self.assertIsNone(response.json()["organization_id"])
        viewer = self.make_user(AppRole.VIEWER)
        self.assertEqual(self.client.get("/api/v1/fee-types", headers=self.auth(viewer)).status_code, 200)

        self.client.put(
            "/api/v1/permissions",
            json={"role_code": AppRole.VIEWER.value, "module_code": "fee_management", "can_view": False},
            headers=self.auth(self.admin),
        )
        self.assertError(self.client.get("/api/v1/fee-types", headers=self.auth(viewer)), 403)

        default_row = self.db.query(RolePermission).filter(RolePermission.organization_id.is_(None)).one()
        response = self.client.delete(f"/api/v1/permissions/{default_row.id}", headers=self.auth(self.admin))
        self.assertError(response, 403, "Only super admins")

    def test_custom_role_lifecycle(self):
        response = self.client.post(
            "/api/v1/roles",
            json={"role_code": "librarian", "role_name": "Librarian"},
            headers=self.auth(self.admin),
        )
        self.assertEqual(response.status_code, 201, response.text)
        role_id = response.json()["id"]
        self.assertEqual(response.json()["organization_id"], self.org.id)

        librarian = self.make_user("librarian")
        response = self.client.delete(f"/api/v1/roles/{role_id}", headers=self.auth(self.admin))
        self.assertError(response, 400, "still assigned")

        self.db.delete(librarian)
        self.db.commit()
        response = self.client.delete(f"/api/v1/roles/{role_id}", headers=self.auth(self.admin))
        self.assertEqual(response.status_code, 200, response.text)

    def test_deleting_role_keeps_other_organizations_permissions(self):
        other = self.make_organization("VTC2", "vtc2.ac.test", "W")
        other_admin = self.make_user(AppRole.ORGANIZATION_ADMIN, organization=other)
        for admin in (self.admin, other_admin):
            response = self.client.post(
                "/api/v1/roles", json={"role_code": "librarian", "role_name": "Librarian"}, headers=self.auth(admin)
            )
            self.assertEqual(response.status_code, 201, response.text)
            self.client.put(
                "/api/v1/permissions",
                json={"role_code": "librarian", "module_code": "reports", "can_view": True},
                headers=self.auth(admin),
            )
        other_role_id = response.json()["id"]

        response = self.client.delete(f"/api/v1/roles/{other_role_id}", headers=self.auth(other_admin))
        self.assertEqual(response.status_code, 200, response.text)

        remaining = self.db.query(RolePermission).filter_by(role_code="librarian").all()
        self.assertEqual([row.organization_id for row in remaining], [self.org.id])

    def test_system_roles_cannot_be_deleted(self):
        seed_defaults(self.db)
        root = self.make_user(AppRole.SUPER_ADMIN)
        roles = self.client.get("/api/v1/roles", headers=self.auth(root)).json()
        system_role = next(role for role in roles if role["role_code"] == AppRole.TRAINER.value)
        response = self.client.delete(f"/api/v1/roles/{system_role['id']}", headers=self.auth(root))
        self.assertError(response, 403, "Cannot delete system roles")

    def test_custom_role_cannot_shadow_builtin(self):
        response = self.client.post(
            "/api/v1/roles",
            json={"role_code": "trainer", "role_name": "Trainer"},
            headers=self.auth(self.admin),
        )
        self.assertError(response, 409)

    def test_modules_are_listed(self):
        response = self.client.get("/api/v1/modules", headers=self.auth(self.admin))
        codes = {module["code"] for module in response.json()}
        self.assertIn("procurement", codes)
        self.assertIn("gradebooks", codes)


class NotificationAndAuditTests(ApiTestCase):
    def test_user_sees_direct_and_role_notifications(self):
        trainer = self.make_user(AppRole.TRAINER)
        other = self.make_organization("VTC2", "vtc2.ac.test", "W")
        self.db.add_all(
            [
                Notification(organization_id=self.org.id, user_id=trainer.id, title="Direct", message="m"),
                Notification(organization_id=self.org.id, role=AppRole.TRAINER.value, title="Role", message="m"),
                Notification(organization_id=other.id, role=AppRole.TRAINER.value, title="Elsewhere", message="m"),
            ]
        )
        self.db.commit()

        response = self.client.get("/api/v1/notifications", headers=self.auth(trainer))
        titles = {row["title"] for row in response.json()}
        self.assertEqual(titles, {"Direct", "Role"})

        direct = next(row for row in response.json() if row["title"] == "Direct")
        response = self.client.post(f"/api/v1/notifications/{direct['id']}/read", headers=self.auth(trainer))
        self.assertTrue(response.json()["is_read"])
        unread = self.client.get("/api/v1/notifications", params={"unread_only": True}, headers=self.auth(trainer))
        self.assertEqual([row["title"] for row in unread.json()], ["Role"])

    def test_role_notification_is_read_per_recipient(self):
        first = self.make_user(AppRole.HOSTEL_COORDINATOR)
        second = self.make_user(AppRole.HOSTEL_COORDINATOR, email="second.coordinator@example.com")
        notification = Notification(
            organization_id=self.org.id, role=AppRole.HOSTEL_COORDINATOR.value, title="Fees overdue", message="m"
        )
        self.db.add(notification)
        self.db.commit()

        response = self.client.post(f"/api/v1/notifications/{notification.id}/read", headers=self.auth(first))
        self.assertTrue(response.json()["is_read"])
        response = self.client.post(f"/api/v1/notifications/{notification.id}/read", headers=self.auth(first))
        self.assertEqual(response.status_code, 200, response.text)

        unread = self.client.get("/api/v1/notifications", params={"unread_only": True}, headers=self.auth(first))
        self.assertEqual(unread.json(), [])
        unread = self.client.get("/api/v1/notifications", params={"unread_only": True}, headers=self.auth(second))
        self.assertEqual([row["title"] for row in unread.json()], ["Fees overdue"])
        self.assertFalse(unread.json()[0]["is_read"])

    def test_foreign_notification_cannot_be_marked(self):
        trainer = self.make_user(AppRole.TRAINER)
        notification = Notification(organization_id=self.org.id, user_id=self.admin.id, title="Admin", message="m")
        self.db.add(notification)
        self.db.commit()
        response = self.client.post(f"/api/v1/notifications/{notification.id}/read", headers=self.auth(trainer))
        self.assertError(response, 404)

    def test_audit_log_is_admin_only_and_filterable(self):
        trainer = self.make_user(AppRole.TRAINER)
        self.client.post(
            "/api/v1/functions/update-user",
            json={"userId": trainer.id, "phone": "0711"},
            headers=self.auth(self.admin),
        )
        response = self.client.get("/api/v1/audit-logs", params={"action": "user_updated"}, headers=self.auth(self.admin))
        self.assertEqual(len(response.json()), 1)
        self.assertError(self.client.get("/api/v1/audit-logs", headers=self.auth(trainer)), 403)


class OrganizationTests(ApiTestCase):
    def test_only_super_admin_creates_organizations(self):
        payload = {"name": "North VTC", "code": "nvtc", "email_domain": "North.ac.test", "trainee_id_prefix": "n"}
        self.assertError(self.client.post("/api/v1/organizations", json=payload, headers=self.auth(self.admin)), 403)

        root = self.make_user(AppRole.SUPER_ADMIN)
        response = self.client.post("/api/v1/organizations", json=payload, headers=self.auth(root))
        self.assertEqual(response.status_code, 201, response.text)
        self.assertEqual(response.json()["code"], "NVTC")
        self.assertEqual(response.json()["trainee_id_prefix"], "N")

        response = self.client.post("/api/v1/organizations", json=payload, headers=self.auth(root))
        self.assertError(response, 409)

    def test_org_admin_sees_only_own_organization(self):
        self.make_organization("VTC2", "vtc2.ac.test", "W")
        response = self.client.get("/api/v1/organizations", headers=self.auth(self.admin))
        self.assertEqual([org["id"] for org in response.json()], [self.org.id])


if __name__ == "__main__":
    unittest.main()
