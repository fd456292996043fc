import unittest
from datetime import timedelta
from unittest import mock

from vtc_backend.database import today
from vtc_backend.finance_module.models import FinancialQueueEntry, QueueEntityType, TraineeFinancialAccount
from vtc_backend.hostel_module.models import HostelBed, HostelFee, HostelFeeStatus, HostelRoom
from vtc_backend.mailer import MailDispatchError
from vtc_backend.rbac_module.models import AppRole, AuditLog, Notification

from .base import ApiTestCase


class HostelTestCase(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.coordinator = self.make_user(AppRole.HOSTEL_COORDINATOR)
        self.headers = self.auth(self.coordinator)

    def build_room(self, gender_type="male", capacity=2, beds=2, monthly_fee=850):
        response = self.client.post(
            "/api/v1/hostel/buildings",
            json={"building_code": f"b-{gender_type}", "building_name": f"{gender_type.title()} Block", "gender_type": gender_type, "total_floors": 2},
            headers=self.headers,
        )
        self.assertEqual(response.status_code, 201, response.text)
        building = response.json()
        response = self.client.post(
            "/api/v1/hostel/rooms",
            json={"building_id": building["id"], "room_number": "101", "floor": 1, "capacity": capacity, "monthly_fee": monthly_fee},
            headers=self.headers,
        )
        self.assertEqual(response.status_code, 201, response.text)
        room = response.json()
        response = self.client.post("/api/v1/hostel/beds", json={"room_id": room["id"], "count": beds}, headers=self.headers)
        self.assertEqual(response.status_code, 201, response.text)
        return building, room, response.json()

    def allocate(self, trainee, bed):
        return self.client.post(
            "/api/v1/hostel/allocations",
            json={"trainee_id": trainee.id, "bed_id": bed["id"]},
            headers=self.headers,
        )


class AccommodationTests(HostelTestCase):
    def test_building_codes_are_unique(self):
        self.build_room()
        response = self.client.post(
            "/api/v1/hostel/buildings",
            json={"building_code": "B-MALE", "building_name": "Duplicate"},
            headers=self.headers,
        )
        self.assertError(response, 409)

    def test_room_floor_must_exist(self):
        building, _, _ = self.build_room()
        response = self.client.post(
            "/api/v1/hostel/rooms",
            json={"building_id": building["id"], "room_number": "301", "floor": 2},
            headers=self.headers,
        )
        self.assertError(response, 400, "outside the building")

    def test_bed_count_is_bounded_by_capacity(self):
        _, room, beds = self.build_room(capacity=2, beds=2)
        self.assertEqual([bed["bed_number"] for bed in beds], ["1", "2"])
        response = self.client.post("/api/v1/hostel/beds", json={"room_id": room["id"], "count": 1}, headers=self.headers)
        self.assertError(response, 400, "Room capacity is 2")

    def test_allocation_occupies_bed_and_checkout_frees_it(self):
        _, room, beds = self.build_room(capacity=1, beds=1)
        trainee = self.make_trainee()
        response = self.allocate(trainee, beds[0])
        self.assertEqual(response.status_code, 201, response.text)
        allocation = response.json()
        self.assertEqual(allocation["monthly_fee"], 850)

        self.assertEqual(self.reload(HostelBed, beds[0]["id"]).status.value, "occupied")
        self.assertEqual(self.reload(HostelRoom, room["id"]).status.value, "occupied")

        response = self.client.post(f"/api/v1/hostel/allocations/{allocation['id']}/checkout", json={}, headers=self.headers)
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json()["status"], "checked_out")
        self.assertEqual(self.reload(HostelBed, beds[0]["id"]).status.value, "available")
        self.assertEqual(self.reload(HostelRoom, room["id"]).status.value, "available")

        response = self.client.post(f"/api/v1/hostel/allocations/{allocation['id']}/checkout", json={}, headers=self.headers)
        self.assertError(response, 400, "Only active allocations")

    def test_bed_holds_one_allocation(self):
        _, _, beds = self.build_room()
        self.allocate(self.make_trainee(number="V1"), beds[0])
        response = self.allocate(self.make_trainee(number="V2"), beds[0])
        self.assertError(response, 400, "Bed is not available")

    def test_trainee_holds_one_allocation(self):
        _, _, beds = self.build_room()
        trainee = self.make_trainee()
        self.allocate(trainee, beds[0])
        response = self.allocate(trainee, beds[1])
        self.assertError(response, 400, "already has an active allocation")

    def test_building_gender_must_match(self):
        _, _, beds = self.build_room(gender_type="female")
        response = self.allocate(self.make_trainee(gender="male"), beds[0])
        self.assertError(response, 400, "reserved for female trainees")

    def test_mixed_building_accepts_anyone(self):
        _, _, beds = self.build_room(gender_type="mixed")
        response = self.allocate(self.make_trainee(gender="female"), beds[0])
        self.assertEqual(response.status_code, 201, response.text)

    def test_occupancy_summary(self):
        building, _, beds = self.build_room(capacity=2, beds=2)
        self.allocate(self.make_trainee(), beds[0])
        response = self.client.get("/api/v1/hostel/occupancy", headers=self.headers)
        summary = response.json()[0]
        self.assertEqual(summary["building_id"], building["id"])
        self.assertEqual(summary["total_beds"], 2)
        self.assertEqual(summary["occupied_beds"], 1)
        self.assertEqual(summary["occupancy_rate"], 50.0)

    def test_other_organization_cannot_see_buildings(self):
        self.build_room()
        other = self.make_organization("VTC2", "vtc2.ac.test", "W")
        outsider = self.make_user(AppRole.HOSTEL_COORDINATOR, organization=other)
        response = self.client.get("/api/v1/hostel/buildings", headers=self.auth(outsider))
        self.assertEqual(response.json(), [])


class HostelFeeTests(HostelTestCase):
    def test_generate_fees_is_idempotent_per_month(self):
        _, _, beds = self.build_room()
        self.allocate(self.make_trainee(number="V1"), beds[0])
        self.allocate(self.make_trainee(number="V2"), beds[1])

        response = self.client.post("/api/v1/functions/generate-hostel-fees", headers=self.headers)
        self.assertEqual(response.status_code, 200, response.text)
        body = response.json()
        self.assertEqual(body["generated"], 2)
        self.assertEqual(body["fee_month"], today().replace(day=1).isoformat())

        fees = self.db.query(HostelFee).all()
        self.assertEqual(len(fees), 2)
        self.assertTrue(all(fee.due_date.day == 5 for fee in fees))
        self.assertEqual(
            self.db.query(FinancialQueueEntry).filter_by(entity_type=QueueEntityType.HOSTEL).count(), 2
        )
        notification = self.db.query(Notification).filter_by(role=AppRole.HOSTEL_COORDINATOR.value).one()
        self.assertEqual(notification.type, "fee_generated")

        response = self.client.post("/api/v1/functions/generate-hostel-fees", headers=self.headers)
        self.assertEqual(response.json()["generated"], 0)
        self.assertEqual(self.db.query(HostelFee).count(), 2)

    def test_generate_without_allocations(self):
        response = self.client.post("/api/v1/functions/generate-hostel-fees", headers=self.headers)
        self.assertEqual(response.json()["message"], "No active allocations found")

    def test_paying_fee_keeps_queue_in_step(self):
        _, _, beds = self.build_room()
        trainee = self.make_trainee()
        self.allocate(trainee, beds[0])
        self.client.post("/api/v1/functions/generate-hostel-fees", headers=self.headers)
        fee = self.db.query(HostelFee).one()

        response = self.client.post(
            f"/api/v1/hostel/fees/{fee.id}/pay", json={"amount": 400, "payment_method": "eft"}, headers=self.headers
        )
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json()["payment_status"], "partial")
        self.assertEqual(response.json()["balance"], 450)

        response = self.client.post(
            f"/api/v1/hostel/fees/{fee.id}/pay", json={"amount": 450, "payment_method": "eft"}, headers=self.headers
        )
        self.assertEqual(response.json()["payment_status"], "paid")
        self.assertIsNotNone(response.json()["paid_date"])

        entry = self.db.query(FinancialQueueEntry).filter_by(entity_id=fee.id).one()
        self.assertEqual(entry.status.value, "cleared")
        account = self.db.query(TraineeFinancialAccount).filter_by(trainee_id=trainee.id).one()
        self.assertEqual(account.balance, 0)

        response = self.client.post(
            f"/api/v1/hostel/fees/{fee.id}/pay", json={"amount": 1, "payment_method": "eft"}, headers=self.headers
        )
        self.assertError(response, 400, "already been paid")

    def test_debtor_clears_hostel_fee_from_queue(self):
        _, _, beds = self.build_room()
        trainee = self.make_trainee()
        self.allocate(trainee, beds[0])
        self.client.post("/api/v1/functions/generate-hostel-fees", headers=self.headers)
        entry = self.db.query(FinancialQueueEntry).filter_by(entity_type=QueueEntityType.HOSTEL).one()

        debtor = self.make_user(AppRole.DEBTOR_OFFICER)
        response = self.client.post(
            "/api/v1/functions/clear-hostel-fee",
            json={"queue_id": entry.id, "amount": 850, "payment_method": "cash"},
            headers=self.auth(debtor),
        )
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json()["payment_status"], "cleared")
        self.assertEqual(self.reload(HostelFee, entry.entity_id).payment_status, HostelFeeStatus.PAID)
        audit = self.db.query(AuditLog).filter_by(action="hostel_fee_payment").one()
        self.assertEqual(audit.record_id, str(entry.id))
        self.assertEqual(audit.user_id, debtor.id)

        statement = self.client.get(f"/api/v1/accounts/{trainee.id}", headers=self.auth(debtor))
        self.assertEqual(statement.status_code, 200, statement.text)
        self.assertEqual(statement.json()["balance"], 0)

    def add_overdue_fee(self, trainee, days_late=10, status=HostelFeeStatus.PENDING):
        fee = HostelFee(
            organization_id=self.org.id,
            trainee_id=trainee.id,
            fee_month=today().replace(day=1),
            fee_amount=850,
            amount_paid=0,
            balance=850,
            due_date=today() - timedelta(days=days_late),
            payment_status=status,
        )
        self.db.add(fee)
        self.db.commit()
        return fee

    def test_overdue_check_notifies_coordinators(self):
        self.add_overdue_fee(self.make_trainee(number="V1"))
        self.add_overdue_fee(self.make_trainee(number="V2"), status=HostelFeeStatus.PAID)

        response = self.client.post("/api/v1/functions/check-overdue-hostel-fees", headers=self.headers)
        self.assertEqual(response.status_code, 200, response.text)
        body = response.json()
        self.assertEqual(body["overdue_count"], 1)
        self.assertEqual(body["organizations_notified"], 1)
        notification = self.db.query(Notification).filter_by(type="fees_overdue").one()
        self.assertIn("850.00", notification.message)

    def test_overdue_check_with_nothing_due(self):
        response = self.client.post("/api/v1/functions/check-overdue-hostel-fees", headers=self.headers)
        self.assertEqual(response.json()["message"], "No overdue fees found")

    def test_overdue_email_failure_is_counted(self):
        self.add_overdue_fee(self.make_trainee())
        with mock.patch("vtc_backend.hostel_module.services.smtp_configured", return_value=True), mock.patch(
            "vtc_backend.hostel_module.services.send_email", side_effect=MailDispatchError("boom")
        ) as send:
            response = self.client.post("/api/v1/functions/check-overdue-hostel-fees", headers=self.headers)
        self.assertEqual(send.call_args.kwargs["recipients"], [self.coordinator.email])
        self.assertEqual(response.json()["notification_failures"], 1)
        self.assertEqual(response.json()["organizations_notified"], 0)
        self.assertEqual(self.db.query(Notification).filter_by(type="fees_overdue").count(), 1)


if __name__ == "__main__":
    unittest.main()
