import unittest

from vtc_backend.database import today
from vtc_backend.inventory_module.models import MovementType, StockItem, StockMovement
from vtc_backend.procurement_module.models import PurchaseOrder
from vtc_backend.rbac_module.models import AppRole, AuditLog, Notification

from .base import ApiTestCase


class ProcurementTestCase(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.officer = self.make_user(AppRole.PROCUREMENT_OFFICER)
        self.headers = self.auth(self.officer)
        self.item = StockItem(
            organization_id=self.org.id,
            item_code="CBL-25",
            item_name="Cable 2.5mm",
            unit_of_measure="metre",
            unit_cost=10,
            current_quantity=0,
            reorder_level=0,
        )
        self.db.add(self.item)
        self.db.commit()
        response = self.client.post(
            "/api/v1/procurement/suppliers",
            json={"supplier_code": "acme", "name": "Acme Electrical"},
            headers=self.headers,
        )
        self.assertEqual(response.status_code, 201, response.text)
        self.supplier = response.json()

    def requisition(self, quantity=100, unit_cost=12):
        response = self.client.post(
            "/api/v1/procurement/requisitions",
            json={
                "department": "Electrical",
                "justification": "Workshop consumables",
                "items": [
                    {
                        "description": "Cable 2.5mm",
                        "quantity": quantity,
                        "estimated_unit_cost": unit_cost,
                        "stock_item_id": self.item.id,
                    }
                ],
            },
            headers=self.headers,
        )
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()

    def approved_requisition(self):
        requisition = self.requisition()
        self.client.post(f"/api/v1/procurement/requisitions/{requisition['id']}/submit", headers=self.headers)
        response = self.client.post(
            f"/api/v1/procurement/requisitions/{requisition['id']}/approve", headers=self.auth(self.admin)
        )
        self.assertEqual(response.status_code, 200, response.text)
        return response.json()

    def issued_order(self):
        requisition = self.approved_requisition()
        order = self.client.post(
            "/api/v1/procurement/purchase-orders",
            json={"supplier_id": self.supplier["id"], "requisition_id": requisition["id"]},
            headers=self.headers,
        ).json()
        response = self.client.post(f"/api/v1/procurement/purchase-orders/{order['id']}/issue", headers=self.headers)
        self.assertEqual(response.status_code, 200, response.text)
        return response.json()

    def receive(self, order, accepted, rejected=0, user=None):
        return self.client.post(
            "/api/v1/procurement/receiving-reports",
            json={
                "purchase_order_id": order["id"],
                "items": [
                    {"po_item_id": order["items"][0]["id"], "quantity_accepted": accepted, "quantity_rejected": rejected}
                ],
            },
            headers=self.auth(user or self.officer),
        )


class RequisitionTests(ProcurementTestCase):
    def test_supplier_codes_are_unique(self):
        self.assertEqual(self.supplier["supplier_code"], "ACME")
        response = self.client.post(
            "/api/v1/procurement/suppliers", json={"supplier_code": "ACME", "name": "Copy"}, headers=self.headers
        )
        self.assertError(response, 409)

    def test_requisition_numbers_and_totals(self):
        first = self.requisition()
        second = self.requisition(quantity=2, unit_cost=7.5)
        year = today().year
        self.assertEqual(first["requisition_number"], f"REQ-{year}-0001")
        self.assertEqual(second["requisition_number"], f"REQ-{year}-0002")
        self.assertEqual(first["status"], "draft")
        self.assertEqual(first["total_estimated_cost"], 1200)
        self.assertEqual(second["items"][0]["total_estimated_cost"], 15)

    def test_submit_notifies_admins_and_approval_is_audited(self):
        requisition = self.approved_requisition()
        self.assertEqual(requisition["status"], "approved")
        self.assertEqual(requisition["approved_by"], self.admin.id)
        self.assertEqual(
            self.db.query(Notification).filter_by(title="Requisition awaiting approval").count(), 1
        )
        self.assertEqual(self.db.query(AuditLog).filter_by(action="requisition_approved").count(), 1)
        self.assertEqual(
            self.db.query(Notification).filter_by(user_id=self.officer.id, title="Requisition approved").count(), 1
        )

    def test_officer_cannot_approve(self):
        requisition = self.requisition()
        self.client.post(f"/api/v1/procurement/requisitions/{requisition['id']}/submit", headers=self.headers)
        response = self.client.post(
            f"/api/v1/procurement/requisitions/{requisition['id']}/approve", headers=self.headers
        )
        self.assertError(response, 403)

    def test_draft_cannot_be_approved(self):
        requisition = self.requisition()
        response = self.client.post(
            f"/api/v1/procurement/requisitions/{requisition['id']}/approve", headers=self.auth(self.admin)
        )
        self.assertError(response, 400, "Only pending requisitions")

    def test_rejection_needs_reason(self):
        requisition = self.requisition()
        self.client.post(f"/api/v1/procurement/requisitions/{requisition['id']}/submit", headers=self.headers)
        url = f"/api/v1/procurement/requisitions/{requisition['id']}/reject"
        self.assertError(self.client.post(url, json={"reason": "   "}, headers=self.auth(self.admin)), 400, "reason is required")

        response = self.client.post(url, json={"reason": "Over budget"}, headers=self.auth(self.admin))
        self.assertEqual(response.json()["status"], "rejected")
        self.assertEqual(response.json()["rejection_reason"], "Over budget")

    def test_order_requires_approved_requisition(self):
        requisition = self.requisition()
        response = self.client.post(
            "/api/v1/procurement/purchase-orders",
            json={"supplier_id": self.supplier["id"], "requisition_id": requisition["id"]},
            headers=self.headers,
        )
        self.assertError(response, 400, "approved requisitions")


class PurchaseOrderTests(ProcurementTestCase):
    def test_order_copies_requisition_lines_and_computes_tax(self):
        requisition = self.approved_requisition()
        response = self.client.post(
            "/api/v1/procurement/purchase-orders",
            json={"supplier_id": self.supplier["id"], "requisition_id": requisition["id"]},
            headers=self.headers,
        )
        self.assertEqual(response.status_code, 201, response.text)
        order = response.json()
        self.assertEqual(order["po_number"], f"PO-{today().year}-0001")
        self.assertEqual(order["status"], "draft")
        self.assertEqual(order["subtotal"], 1200)
        self.assertEqual(order["tax_amount"], 180)
        self.assertEqual(order["grand_total"], 1380)
        self.assertEqual(order["items"][0]["outstanding_quantity"], 100)

    def test_explicit_lines_without_requisition(self):
        response = self.client.post(
            "/api/v1/procurement/purchase-orders",
            json={
                "supplier_id": self.supplier["id"],
                "tax_rate": 0,
                "items": [{"description": "Drill bits", "quantity_ordered": 4, "unit_cost": 25}],
            },
            headers=self.headers,
        )
        self.assertEqual(response.json()["grand_total"], 100)

    def test_order_needs_items(self):
        response = self.client.post(
            "/api/v1/procurement/purchase-orders", json={"supplier_id": self.supplier["id"]}, headers=self.headers
        )
        self.assertError(response, 400, "at least one item")

    def test_inactive_supplier_is_refused(self):
        self.client.patch(
            f"/api/v1/procurement/suppliers/{self.supplier['id']}", json={"active": False}, headers=self.headers
        )
        response = self.client.post(
            "/api/v1/procurement/purchase-orders",
            json={"supplier_id": self.supplier["id"], "items": [{"description": "X", "quantity_ordered": 1, "unit_cost": 1}]},
            headers=self.headers,
        )
        self.assertError(response, 400, "Supplier is inactive")

    def test_partial_then_full_receipt_books_stock(self):
        order = self.issued_order()
        self.assertEqual(order["status"], "issued")

        response = self.receive(order, accepted=60, rejected=5)
        self.assertEqual(response.status_code, 201, response.text)
        report = response.json()
        self.assertEqual(report["receipt_number"], f"GRN-{today().year}-0001")
        self.assertEqual(report["items"][0]["quantity_received"], 65)

        self.assertEqual(self.reload(PurchaseOrder, order["id"]).status.value, "partially_received")
        self.assertEqual(self.reload(StockItem, self.item.id).current_quantity, 60)

        self.assertError(self.receive(order, accepted=41), 400, "Only 40 of Cable 2.5mm is outstanding")

        stock_clerk = self.make_user(AppRole.STOCK_CONTROL_OFFICER)
        self.assertEqual(self.receive(order, accepted=40, user=stock_clerk).status_code, 201)

        stored = self.reload(PurchaseOrder, order["id"])
        self.assertEqual(stored.status.value, "received")
        item = self.reload(StockItem, self.item.id)
        self.assertEqual(item.current_quantity, 100)
        self.assertEqual(item.unit_cost, 12)

        movements = self.db.query(StockMovement).filter_by(stock_item_id=self.item.id).all()
        self.assertEqual(len(movements), 2)
        self.assertTrue(all(movement.movement_type == MovementType.INFLOW for movement in movements))

        self.assertError(self.receive(order, accepted=1), 400, "issued purchase order")

    def test_rejected_receipt_line_rolls_back_everything(self):
        order = self.issued_order()
        self.assertError(self.receive(order, accepted=0, rejected=0), 400, "Nothing received")
        self.assertEqual(self.reload(StockItem, self.item.id).current_quantity, 0)
        self.assertEqual(self.reload(PurchaseOrder, order["id"]).status.value, "issued")

    def test_draft_order_cannot_receive(self):
        order = self.client.post(
            "/api/v1/procurement/purchase-orders",
            json={"supplier_id": self.supplier["id"], "items": [{"description": "X", "quantity_ordered": 1, "unit_cost": 1}]},
            headers=self.headers,
        ).json()
        self.assertError(self.receive(order, accepted=1), 400, "issued purchase order")

    def test_cancel_rules(self):
        order = self.issued_order()
        self.receive(order, accepted=10)
        response = self.client.post(f"/api/v1/procurement/purchase-orders/{order['id']}/cancel", headers=self.headers)
        self.assertError(response, 400)

        other = self.issued_order()
        response = self.client.post(f"/api/v1/procurement/purchase-orders/{other['id']}/cancel", headers=self.headers)
        self.assertEqual(response.json()["status"], "cancelled")
        self.assertError(
            self.client.post(f"/api/v1/procurement/purchase-orders/{other['id']}/issue", headers=self.headers),
            400,
            "Only draft purchase orders",
        )

    def test_trainer_cannot_receive(self):
        order = self.issued_order()
        self.assertError(self.receive(order, accepted=1, user=self.make_user(AppRole.TRAINER)), 403)


if __name__ == "__main__":
    unittest.main()
