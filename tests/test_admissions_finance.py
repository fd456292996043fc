import unittest

from vtc_backend.admissions_module.models import (
    ProvisioningLog,
    QualificationStatus,
    Registration,
    RegistrationRecordStatus,
    Trainee,
    TraineeApplication,
    TraineeStatus,
)
from vtc_backend.assessment_module.models import QualificationApprovalStatus
from vtc_backend.database import today
from vtc_backend.finance_module.models import (
    FeeCategory,
    FinancialQueueEntry,
    QueueEntityType,
    QueueStatus,
    TraineeFinancialAccount,
)
from vtc_backend.rbac_module.models import AppRole, Notification, User

from .base import ApiTestCase


class AdmissionsTestCase(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.clerk = self.make_user(AppRole.REGISTRATION_OFFICER)
        self.debtor = self.make_user(AppRole.DEBTOR_OFFICER)
        self.qualification = self.make_qualification()
        self.make_fee_type(FeeCategory.APPLICATION, 200)
        self.make_fee_type(FeeCategory.REGISTRATION, 1500)

    def capture(self, **overrides):
        payload = {
            "first_name": "Lerato",
            "last_name": "Dlamini",
            "email": "Lerato@Mail.test",
            "gender": "female",
            "national_id": "9901015800081",
            "qualification_id": self.qualification.id,
            "needs_hostel_accommodation": True,
        }
        payload.update(overrides)
        response = self.client.post("/api/v1/applications", json=payload, headers=self.auth(self.clerk))
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()

    def screen(self, application_id, outcome="provisionally_qualified"):
        return self.client.post(
            "/api/v1/functions/screen-application",
            json={"application_id": application_id, "qualification_status": outcome, "screening_remarks": "ok"},
            headers=self.auth(self.clerk),
        )

    def pay(self, endpoint, queue_id, amount):
        return self.client.post(
            f"/api/v1/functions/{endpoint}",
            json={"queue_id": queue_id, "amount": amount, "payment_method": "cash"},
            headers=self.auth(self.debtor),
        )

    def admit(self):
        application = self.capture()
        queue_id = self.screen(application["id"]).json()["queue_entry_id"]
        response = self.pay("clear-application-fee", queue_id, 200)
        self.assertEqual(response.status_code, 200, response.text)
        return application, response.json()

    def register(self, application_id):
        return self.client.post(
            "/api/v1/functions/register-trainee",
            json={"application_id": application_id, "qualification_id": self.qualification.id, "academic_year": "2025"},
            headers=self.auth(self.clerk),
        )


class AdmissionsWorkflowTests(AdmissionsTestCase):
    def test_capture_assigns_application_number(self):
        application = self.capture()
        self.assertTrue(application["application_number"].startswith(f"APP{today().year}"))
        self.assertEqual(application["email"], "lerato@mail.test")
        self.assertEqual(application["registration_status"], "applied")

    def test_screening_raises_application_fee_without_admitting(self):
        application = self.capture()
        response = self.screen(application["id"])
        self.assertEqual(response.status_code, 200, response.text)
        body = response.json()
        self.assertTrue(body["success"])

        entry = self.db.get(FinancialQueueEntry, body["queue_entry_id"])
        self.assertEqual(entry.entity_type.value, "APPLICATION")
        self.assertEqual(entry.entity_id, application["id"])
        self.assertEqual(entry.amount, 200)
        self.assertEqual(entry.status.value, "pending")

        stored = self.reload(TraineeApplication, application["id"])
        self.assertEqual(stored.registration_status.value, "applied")
        self.assertEqual(stored.hostel_application_status.value, "applied")

    def test_failed_screening_raises_no_fee(self):
        application = self.capture()
        response = self.screen(application["id"], "does_not_qualify")
        self.assertIsNone(response.json()["queue_entry_id"])
        self.assertEqual(self.db.query(FinancialQueueEntry).count(), 0)

    def test_rescreening_as_not_qualified_withdraws_unpaid_fee(self):
        application = self.capture()
        queue_id = self.screen(application["id"]).json()["queue_entry_id"]

        response = self.screen(application["id"], "does_not_qualify")
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(self.db.query(FinancialQueueEntry).filter_by(entity_type=QueueEntityType.APPLICATION).count(), 0)
        self.assertError(self.pay("clear-application-fee", queue_id, 200), 404)
        self.assertIsNone(self.reload(TraineeApplication, application["id"]).user_id)

    def test_rescreening_after_part_payment_is_refused(self):
        application = self.capture()
        queue_id = self.screen(application["id"]).json()["queue_entry_id"]
        self.pay("clear-application-fee", queue_id, 50)

        response = self.screen(application["id"], "does_not_qualify")
        self.assertError(response, 400, "can no longer change")
        stored = self.reload(TraineeApplication, application["id"])
        self.assertEqual(stored.qualification_status.value, "provisionally_qualified")
        self.assertEqual(self.db.get(FinancialQueueEntry, queue_id).amount_paid, 50)

    def test_fee_for_unqualified_application_cannot_be_cleared(self):
        application = self.capture()
        self.screen(application["id"], "does_not_qualify")
        entry = FinancialQueueEntry(
            organization_id=self.org.id,
            entity_type=QueueEntityType.APPLICATION,
            entity_id=application["id"],
            amount=200,
            amount_paid=0,
            balance=200,
            status=QueueStatus.PENDING,
        )
        self.db.add(entry)
        self.db.commit()

        self.assertError(self.pay("clear-application-fee", entry.id, 200), 400, "application is does_not_qualify")
        self.assertEqual(self.reload(FinancialQueueEntry, entry.id).amount_paid, 0)
        self.assertEqual(self.db.query(Trainee).count(), 0)

    def test_screening_without_fee_type_rolls_back(self):
        other = self.make_organization("VTC2", "vtc2.ac.test", "W")
        clerk = self.make_user(AppRole.REGISTRATION_OFFICER, organization=other)
        response = self.client.post(
            "/api/v1/applications",
            json={"first_name": "A", "last_name": "B"},
            headers=self.auth(clerk),
        )
        application_id = response.json()["id"]
        response = self.client.post(
            "/api/v1/functions/screen-application",
            json={"application_id": application_id, "qualification_status": "provisionally_qualified"},
            headers=self.auth(clerk),
        )
        self.assertError(response, 400, "No active application fee type is configured")
        self.assertEqual(self.reload(TraineeApplication, application_id).qualification_status.value, "pending")

    def test_cannot_screen_other_organization(self):
        application = self.capture()
        other = self.make_organization("VTC2", "vtc2.ac.test", "W")
        outsider = self.make_user(AppRole.REGISTRATION_OFFICER, organization=other)
        response = self.client.post(
            "/api/v1/functions/screen-application",
            json={"application_id": application["id"], "qualification_status": "provisionally_qualified"},
            headers=self.auth(outsider),
        )
        self.assertError(response, 403)

    def test_partial_application_payment_keeps_queue_open(self):
        application = self.capture()
        queue_id = self.screen(application["id"]).json()["queue_entry_id"]

        response = self.pay("clear-application-fee", queue_id, 50)
        body = response.json()
        self.assertEqual(body["payment_status"], "partial")
        self.assertEqual(body["amount_paid"], 50)
        self.assertEqual(body["balance"], 150)
        self.assertIsNone(body["provisioning"])
        self.assertEqual(self.reload(TraineeApplication, application["id"]).registration_status.value, "applied")

        response = self.pay("clear-application-fee", queue_id, 150)
        self.assertEqual(response.json()["payment_status"], "cleared")
        self.assertEqual(response.json()["balance"], 0)

    def test_clearing_application_fee_provisions_identity(self):
        application, body = self.admit()
        provisioning = body["provisioning"]
        expected_number = f"V{today().year}0001"
        self.assertEqual(provisioning["trainee_number"], expected_number)
        self.assertEqual(provisioning["system_email"], f"{expected_number.lower()}@vtc1.ac.test")
        self.assertFalse(provisioning["account_existed"])

        user = self.db.get(User, provisioning["user_id"])
        self.assertEqual(user.role, AppRole.TRAINEE.value)
        self.assertTrue(user.password_reset_required)

        trainee = self.db.get(Trainee, provisioning["trainee_id"])
        self.assertEqual(trainee.status, TraineeStatus.PROVISIONAL)
        self.assertEqual(trainee.gender, "female")

        stored = self.reload(TraineeApplication, application["id"])
        self.assertEqual(stored.registration_status.value, "provisionally_admitted")
        self.assertEqual(stored.account_provisioning_status.value, "auto_provisioned")

        account = self.db.query(TraineeFinancialAccount).filter_by(trainee_id=trainee.id).one()
        self.assertEqual(account.total_fees, 200)
        self.assertEqual(account.total_paid, 200)
        self.assertEqual(account.balance, 0)
        self.assertEqual(len(account.transactions), 2)

        log = self.db.query(ProvisioningLog).filter_by(result="success").one()
        self.assertEqual(log.details["workflow_step"], "clear-application-fee")

    def test_cleared_fee_cannot_be_paid_again(self):
        application = self.capture()
        queue_id = self.screen(application["id"]).json()["queue_entry_id"]
        self.pay("clear-application-fee", queue_id, 200)
        self.assertError(self.pay("clear-application-fee", queue_id, 10), 400, "already been cleared")

    def test_non_positive_payment_is_rejected(self):
        application = self.capture()
        queue_id = self.screen(application["id"]).json()["queue_entry_id"]
        self.assertError(self.pay("clear-application-fee", queue_id, 0), 400, "greater than zero")

    def test_wrong_entity_type_is_rejected(self):
        application = self.capture()
        queue_id = self.screen(application["id"]).json()["queue_entry_id"]
        self.assertError(self.pay("clear-registration-fee", queue_id, 200), 400, "registration fees")

    def test_clearing_other_organization_fee_is_forbidden(self):
        application = self.capture()
        queue_id = self.screen(application["id"]).json()["queue_entry_id"]
        other = self.make_organization("VTC2", "vtc2.ac.test", "W")
        outsider = self.make_user(AppRole.DEBTOR_OFFICER, organization=other)
        response = self.client.post(
            "/api/v1/functions/clear-application-fee",
            json={"queue_id": queue_id, "amount": 200, "payment_method": "cash"},
            headers=self.auth(outsider),
        )
        self.assertError(response, 403)

    def test_registration_requires_provisional_admission(self):
        application = self.capture()
        self.screen(application["id"])
        response = self.register(application["id"])
        self.assertError(response, 400, "expected provisionally_admitted")
        self.assertEqual(self.db.query(Registration).count(), 0)

    def test_registration_requires_approved_qualification(self):
        application, _ = self.admit()
        draft = self.make_qualification(code="NVC-DRAFT", status=QualificationApprovalStatus.DRAFT)
        response = self.client.post(
            "/api/v1/functions/register-trainee",
            json={"application_id": application["id"], "qualification_id": draft.id},
            headers=self.auth(self.clerk),
        )
        self.assertError(response, 400, "approved qualifications")

    def test_full_registration_flow(self):
        application, admitted = self.admit()
        response = self.register(application["id"])
        self.assertEqual(response.status_code, 200, response.text)
        body = response.json()
        self.assertEqual(body["registration_status"], "fee_pending")

        entry = self.db.get(FinancialQueueEntry, body["queue_entry_id"])
        self.assertEqual(entry.entity_type.value, "REGISTRATION")
        self.assertEqual(entry.entity_id, body["registration_id"])
        self.assertEqual(self.reload(TraineeApplication, application["id"]).registration_status.value, "registered")

        response = self.pay("clear-registration-fee", entry.id, 1000)
        self.assertEqual(response.json()["payment_status"], "partial")
        self.assertEqual(self.reload(Registration, body["registration_id"]).status, RegistrationRecordStatus.FEE_PENDING)

        response = self.pay("clear-registration-fee", entry.id, 500)
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json()["final_status"], "REGISTERED")

        registration = self.reload(Registration, body["registration_id"])
        self.assertEqual(registration.status, RegistrationRecordStatus.REGISTERED)
        self.assertIsNotNone(registration.registered_at)
        trainee = self.db.get(Trainee, admitted["provisioning"]["trainee_id"])
        self.assertEqual(trainee.status, TraineeStatus.ACTIVE)
        self.assertEqual(
            self.reload(TraineeApplication, application["id"]).hostel_application_status.value, "allocated"
        )

        account = self.db.query(TraineeFinancialAccount).filter_by(trainee_id=trainee.id).one()
        self.assertEqual(account.total_fees, 1700)
        self.assertEqual(account.total_paid, 1700)

        notification = self.db.query(Notification).filter_by(user_id=trainee.user_id).one()
        self.assertEqual(notification.title, "Registration Complete")

    def test_trainee_reads_own_account(self):
        _, admitted = self.admit()
        trainee_user = self.db.get(User, admitted["provisioning"]["user_id"])
        response = self.client.get("/api/v1/trainees/me/account", headers=self.auth(trainee_user))
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json()["balance"], 0)
        self.assertEqual(len(response.json()["transactions"]), 2)

    def test_admitted_application_cannot_be_edited(self):
        application, _ = self.admit()
        response = self.client.patch(
            f"/api/v1/applications/{application['id']}", json={"phone": "0800"}, headers=self.auth(self.clerk)
        )
        self.assertError(response, 400, "can no longer be edited")


class ProvisionTraineeAuthTests(AdmissionsTestCase):
    def provision(self, user=None, **payload):
        return self.client.post(
            "/api/v1/functions/provision-trainee-auth", json=payload, headers=self.auth(user or self.clerk)
        )

    def test_requires_trainee_or_application(self):
        self.assertError(self.provision(), 400, "Either trainee_id or application_id is required")

    def test_existing_login_is_skipped(self):
        application, admitted = self.admit()
        response = self.provision(application_id=application["id"])
        self.assertEqual(response.status_code, 200, response.text)
        body = response.json()
        self.assertEqual(body["message"], "Account already exists")
        self.assertEqual(body["user_id"], admitted["provisioning"]["user_id"])
        self.assertEqual(self.db.query(ProvisioningLog).filter_by(result="skipped").count(), 1)

    def test_lost_login_is_recreated_for_trainee(self):
        _, admitted = self.admit()
        trainee = self.db.get(Trainee, admitted["provisioning"]["trainee_id"])
        self.db.delete(self.db.get(User, trainee.user_id))
        trainee.user_id = None
        application = self.db.get(TraineeApplication, trainee.application_id)
        application.user_id = None
        self.db.commit()

        response = self.provision(trainee_id=trainee.id)
        self.assertEqual(response.status_code, 200, response.text)
        body = response.json()
        self.assertEqual(body["message"], "Account created with default password")
        self.assertEqual(body["email"], admitted["provisioning"]["system_email"])
        self.assertEqual(body["provisioning_status"], "manually_provisioned")

        user = self.db.get(User, body["user_id"])
        self.assertEqual(user.role, AppRole.TRAINEE.value)
        self.assertTrue(user.password_reset_required)
        self.assertEqual(self.reload(Trainee, trainee.id).user_id, user.id)
        log = self.db.query(ProvisioningLog).filter_by(result="success", trigger_type="manual").one()
        self.assertFalse(log.details["account_existed"])

    def test_application_without_trainee_number_fails_and_is_logged(self):
        application = self.capture()
        self.screen(application["id"])
        response = self.provision(application_id=application["id"])
        self.assertError(response, 400, "Trainee number not yet assigned")

        self.assertEqual(
            self.reload(TraineeApplication, application["id"]).account_provisioning_status.value, "failed"
        )
        log = self.db.query(ProvisioningLog).filter_by(result="failed").one()
        self.assertEqual(log.application_id, application["id"])

    def test_unqualified_application_needs_force(self):
        application, admitted = self.admit()
        stored = self.db.get(TraineeApplication, application["id"])
        stored.qualification_status = QualificationStatus.DOES_NOT_QUALIFY
        stored.user_id = None
        self.db.commit()

        response = self.provision(application_id=application["id"])
        self.assertError(response, 400, "Invalid qualification status for provisioning: does_not_qualify")

        response = self.provision(application_id=application["id"], force_provision=True, trigger_type="bulk")
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json()["message"], "Account already existed, linked to trainee")
        self.assertEqual(response.json()["user_id"], admitted["provisioning"]["user_id"])

    def test_debtor_cannot_provision(self):
        application, _ = self.admit()
        self.assertError(self.provision(user=self.debtor, application_id=application["id"]), 403)

    def test_other_organization_cannot_provision(self):
        application, _ = self.admit()
        other = self.make_organization("VTC2", "vtc2.ac.test", "W")
        outsider = self.make_user(AppRole.REGISTRATION_OFFICER, organization=other)
        self.assertError(self.provision(user=outsider, application_id=application["id"]), 403)


class FinancialQueueTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.debtor = self.make_user(AppRole.DEBTOR_OFFICER)

    def add_entry(self, entity_id, amount, amount_paid=0, status=QueueStatus.PENDING, organization=None):
        entry = FinancialQueueEntry(
            organization_id=(organization or self.org).id,
            entity_type=QueueEntityType.APPLICATION,
            entity_id=entity_id,
            amount=amount,
            amount_paid=amount_paid,
            balance=amount - amount_paid,
            status=status,
        )
        self.db.add(entry)
        self.db.commit()
        return entry

    def test_stats_count_statuses_and_outstanding(self):
        self.add_entry(1, 200)
        self.add_entry(2, 200, 50, QueueStatus.PARTIAL)
        self.add_entry(3, 200, 200, QueueStatus.CLEARED)
        other = self.make_organization("VTC2", "vtc2.ac.test", "W")
        self.add_entry(4, 999, organization=other)

        response = self.client.get("/api/v1/financial-queue/stats", headers=self.auth(self.debtor))
        self.assertEqual(response.status_code, 200, response.text)
        stats = response.json()
        self.assertEqual(stats["pending"], 1)
        self.assertEqual(stats["partial"], 1)
        self.assertEqual(stats["cleared"], 1)
        self.assertEqual(stats["pending_by_entity"]["APPLICATION"], 2)
        self.assertEqual(stats["amount_outstanding"], 350)

    def test_queue_filters_by_status(self):
        self.add_entry(1, 200)
        self.add_entry(2, 200, 200, QueueStatus.CLEARED)
        response = self.client.get(
            "/api/v1/financial-queue", params={"status_filter": "pending"}, headers=self.auth(self.debtor)
        )
        self.assertEqual([entry["entity_id"] for entry in response.json()], [1])

    def test_fee_type_crud(self):
        response = self.client.post(
            "/api/v1/fee-types",
            json={"name": "Tuition", "category": "tuition", "amount": 4500},
            headers=self.auth(self.debtor),
        )
        self.assertEqual(response.status_code, 201, response.text)
        fee_type_id = response.json()["id"]
        self.assertEqual(response.json()["organization_id"], self.org.id)

        response = self.client.patch(
            f"/api/v1/fee-types/{fee_type_id}", json={"active": False}, headers=self.auth(self.debtor)
        )
        self.assertFalse(response.json()["active"])

        response = self.client.get("/api/v1/fee-types", params={"active_only": True}, headers=self.auth(self.debtor))
        self.assertEqual(response.json(), [])

    def test_trainer_cannot_clear_fees(self):
        trainer = self.make_user(AppRole.TRAINER)
        entry = self.add_entry(1, 200)
        response = self.client.post(
            "/api/v1/functions/clear-application-fee",
            json={"queue_id": entry.id, "amount": 200, "payment_method": "cash"},
            headers=self.auth(trainer),
        )
        self.assertError(response, 403)


if __name__ == "__main__":
    unittest.main()
