import unittest

from vtc_backend.inventory_module.models import Asset, StockItem
from vtc_backend.rbac_module.models import AppRole, AuditLog, Notification

from .base import ApiTestCase


class StockTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.clerk = self.make_user(AppRole.STOCK_CONTROL_OFFICER)
        self.headers = self.auth(self.clerk)

    def create_item(self, code="cbl-25", reorder_level=10, unit_cost=12.5):
        response = self.client.post(
            "/api/v1/stock/items",
            json={
                "item_code": code,
                "item_name": "Cable 2.5mm",
                "unit_of_measure": "metre",
                "unit_cost": unit_cost,
                "reorder_level": reorder_level,
            },
            headers=self.headers,
        )
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()

    def move(self, item, movement_type, quantity, **extra):
        payload = {"stock_item_id": item["id"], "movement_type": movement_type, "quantity": quantity}
        payload.update(extra)
        return self.client.post("/api/v1/stock/movements", json=payload, headers=self.headers)

    def test_item_codes_are_unique_per_organization(self):
        item = self.create_item()
        self.assertEqual(item["item_code"], "CBL-25")
        self.assertEqual(item["current_quantity"], 0)
        response = self.client.post(
            "/api/v1/stock/items", json={"item_code": "CBL-25", "item_name": "Duplicate"}, headers=self.headers
        )
        self.assertError(response, 409, "CBL-25 already exists")

    def test_movements_update_quantity(self):
        item = self.create_item()
        response = self.move(item, "inflow", 100, unit_cost=11, reference_number="GRN-1")
        self.assertEqual(response.status_code, 201, response.text)
        self.assertEqual(response.json()["quantity_after"], 100)
        self.assertEqual(response.json()["total_cost"], 1100)

        self.assertEqual(self.move(item, "outflow", 30).json()["quantity_after"], 70)
        self.assertEqual(self.move(item, "adjustment", -5, notes="Stock take").json()["quantity_after"], 65)

        stored = self.reload(StockItem, item["id"])
        self.assertEqual(stored.current_quantity, 65)
        self.assertEqual(stored.unit_cost, 11)

        history = self.client.get(
            "/api/v1/stock/movements", params={"stock_item_id": item["id"]}, headers=self.headers
        ).json()
        self.assertEqual([row["movement_type"] for row in history], ["adjustment", "outflow", "inflow"])

    def test_outflow_cannot_take_stock_below_zero(self):
        item = self.create_item()
        self.move(item, "inflow", 5)
        self.assertError(self.move(item, "outflow", 6), 400, "Insufficient stock for CBL-25")
        self.assertEqual(self.reload(StockItem, item["id"]).current_quantity, 5)

    def test_quantity_rules(self):
        item = self.create_item()
        self.assertError(self.move(item, "inflow", 0), 400, "greater than zero")
        self.assertError(self.move(item, "adjustment", 0), 400, "cannot be zero")

    def test_crossing_reorder_level_notifies_once(self):
        item = self.create_item(reorder_level=10)
        self.move(item, "inflow", 20)
        self.move(item, "outflow", 12)
        self.move(item, "outflow", 3)

        notifications = self.db.query(Notification).filter_by(title="Low stock").all()
        self.assertEqual(len(notifications), 1)
        self.assertEqual(notifications[0].role, AppRole.STOCK_CONTROL_OFFICER.value)

        low = self.client.get("/api/v1/stock/low-stock", headers=self.headers).json()
        self.assertEqual([row["item_code"] for row in low], ["CBL-25"])
        self.assertTrue(low[0]["is_low_stock"])

    def test_inactive_item_rejects_movements(self):
        item = self.create_item()
        self.client.patch(f"/api/v1/stock/items/{item['id']}", json={"active": False}, headers=self.headers)
        self.assertError(self.move(item, "inflow", 1), 400, "inactive")

    def test_category_with_items_cannot_be_deleted(self):
        response = self.client.post("/api/v1/stock/categories", json={"name": "Electrical"}, headers=self.headers)
        category = response.json()
        self.client.post(
            "/api/v1/stock/items",
            json={"item_code": "SW-1", "item_name": "Switch", "category_id": category["id"]},
            headers=self.headers,
        )
        response = self.client.delete(f"/api/v1/stock/categories/{category['id']}", headers=self.headers)
        self.assertError(response, 400, "still has stock items")

    def test_search_and_isolation(self):
        self.create_item()
        response = self.client.get("/api/v1/stock/items", params={"search": "cable"}, headers=self.headers)
        self.assertEqual(len(response.json()), 1)

        other = self.make_organization("VTC2", "vtc2.ac.test", "W")
        outsider = self.make_user(AppRole.STOCK_CONTROL_OFFICER, organization=other)
        self.assertEqual(self.client.get("/api/v1/stock/items", headers=self.auth(outsider)).json(), [])

    def test_trainer_cannot_record_movements(self):
        item = self.create_item()
        trainer = self.make_user(AppRole.TRAINER)
        response = self.client.post(
            "/api/v1/stock/movements",
            json={"stock_item_id": item["id"], "movement_type": "outflow", "quantity": 1},
            headers=self.auth(trainer),
        )
        self.assertError(response, 403)


class AssetTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.coordinator = self.make_user(AppRole.ASSET_MAINTENANCE_COORDINATOR)
        self.headers = self.auth(self.coordinator)
        response = self.client.post(
            "/api/v1/assets",
            json={
                "asset_code": "lathe-01",
                "asset_name": "Metal Lathe",
                "purchase_date": "2023-03-01",
                "purchase_cost": 10000,
                "depreciation_rate": 20,
            },
            headers=self.headers,
        )
        self.assertEqual(response.status_code, 201, response.text)
        self.asset = response.json()

    def depreciate(self, year=None):
        return self.client.post(
            f"/api/v1/assets/{self.asset['id']}/depreciation", json={"year": year}, headers=self.headers
        )

    def test_new_asset_is_valued_at_cost(self):
        self.assertEqual(self.asset["asset_code"], "LATHE-01")
        self.assertEqual(self.asset["current_value"], 10000)
        self.assertEqual(self.asset["status"], "active")

    def test_depreciation_runs_year_by_year(self):
        first = self.depreciate().json()
        self.assertEqual(first["year"], 2023)
        self.assertEqual(first["opening_value"], 10000)
        self.assertEqual(first["depreciation_amount"], 2000)
        self.assertEqual(first["closing_value"], 8000)

        second = self.depreciate().json()
        self.assertEqual(second["year"], 2024)
        self.assertEqual(second["opening_value"], 8000)
        self.assertEqual(second["closing_value"], 6400)

        self.assertEqual(self.reload(Asset, self.asset["id"]).current_value, 6400)
        rows = self.client.get(f"/api/v1/assets/{self.asset['id']}/depreciation", headers=self.headers).json()
        self.assertEqual([row["year"] for row in rows], [2023, 2024])

    def test_year_is_booked_once_and_in_order(self):
        self.depreciate(2024)
        self.assertError(self.depreciate(2024), 409, "already recorded")
        self.assertError(self.depreciate(2023), 400, "must follow 2024")

    def test_years_cannot_be_skipped(self):
        self.depreciate(2023)
        self.assertError(self.depreciate(2026), 400, "next year to book is 2024")
        response = self.depreciate(2024)
        self.assertEqual(response.status_code, 201, response.text)

    def test_disposed_asset_is_not_depreciated(self):
        response = self.client.patch(
            f"/api/v1/assets/{self.asset['id']}", json={"status": "disposed"}, headers=self.headers
        )
        self.assertEqual(response.json()["status"], "disposed")
        entry = self.db.query(AuditLog).filter_by(action="asset_status_changed").one()
        self.assertEqual(entry.new_data, {"status": "disposed"})
        self.assertError(self.depreciate(), 400, "Disposed assets")

    def test_asset_without_rate(self):
        self.client.patch(f"/api/v1/assets/{self.asset['id']}", json={"depreciation_rate": 0}, headers=self.headers)
        self.assertError(self.depreciate(), 400, "no depreciation rate")


if __name__ == "__main__":
    unittest.main()
