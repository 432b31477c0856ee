"""
HTTP-level tests for the stock API: routing, status codes and the JSON
envelope around the services.
"""

import json

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import Client

from stock.models import StockMovement
from stock.services import ProductStockService


pytestmark = pytest.mark.django_db

BASE = "/api/stock"


@pytest.fixture
def client(actor_id):
    return Client(headers={"X-Actor-Id": actor_id})


def post_json(client, url, data):
    return client.post(url, data=json.dumps(data), content_type="application/json")


def put_json(client, url, data):
    return client.put(url, data=json.dumps(data), content_type="application/json")


class TestStockItems:

    def test_create_and_get(self, client):
        response = post_json(client, f"{BASE}/items/", {"name": "Flour", "unit_of_measure": "kg"})

        assert response.status_code == 201
        item_id = response.json()["id"]

        response = client.get(f"{BASE}/items/{item_id}/")
        body = response.json()
        assert body["success"] is True
        assert body["item"]["current_quantity"] == "0.000"
        assert body["item"]["status"] == "out_of_stock"

    def test_duplicate_name_is_409(self, client, flour):
        response = post_json(client, f"{BASE}/items/", {"name": "Flour", "unit_of_measure": "kg"})

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "CONFLICT"

    def test_missing_item_is_404(self, client):
        response = client.get(f"{BASE}/items/999/")

        assert response.status_code == 404
        assert response.json()["success"] is False

    def test_invalid_json_is_400(self, client):
        response = client.post(f"{BASE}/items/", data="{not json", content_type="application/json")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_quantity_not_editable(self, client, flour):
        response = put_json(client, f"{BASE}/items/{flour.id}/", {"current_quantity": "99"})

        assert response.status_code == 400

    def test_list_low_stock_filter(self, client, flour, sugar):
        post_json(client, f"{BASE}/items/{flour.id}/adjust/", {"quantity": "-8", "reason": "spoiled"})

        response = client.get(f"{BASE}/items/", {"low_stock": "true"})

        assert [i["name"] for i in response.json()["items"]] == ["Flour"]

    def test_delete_protected_item_is_422(self, client, flour, cake):
        ProductStockService.add_line(cake.id, flour.id, "2")

        response = client.delete(f"{BASE}/items/{flour.id}/")

        assert response.status_code == 422
        error = response.json()["error"]
        assert error["code"] == "BUSINESS_RULE_VIOLATION"
        assert error["details"]["usage_count"] == 1

    def test_deletion_check(self, client, flour, cake):
        ProductStockService.add_line(cake.id, flour.id, "2")

        response = client.get(f"{BASE}/items/{flour.id}/deletion-check/")

        assert response.json()["can_delete"] is False

    def test_soft_delete_then_restore(self, client, flour):
        assert client.delete(f"{BASE}/items/{flour.id}/").status_code == 200
        assert client.get(f"{BASE}/items/{flour.id}/").status_code == 404

        response = client.post(f"{BASE}/items/{flour.id}/restore/")

        assert response.status_code == 200
        assert response.json()["item"]["is_deleted"] is False

    def test_update_ignores_path_keys_in_body(self, client, flour):
        response = put_json(client, f"{BASE}/items/{flour.id}/", {"item_id": 999, "name": "Wheat flour"})

        assert response.status_code == 200
        assert response.json()["item"]["name"] == "Wheat flour"

    def test_update_with_only_unknown_keys_is_400(self, client, flour):
        response = put_json(client, f"{BASE}/items/{flour.id}/", {"item_id": 999})

        assert response.status_code == 400

    def test_receive_out_of_range_is_400(self, client, flour):
        response = post_json(client, f"{BASE}/items/{flour.id}/receive/", {"quantity": "1e100"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_stats(self, client, flour, sugar):
        response = client.get(f"{BASE}/items/stats/")

        assert response.json()["total"] == 2


class TestQuantityEndpoints:

    def test_receive(self, client, flour, actor_id):
        response = post_json(client, f"{BASE}/items/{flour.id}/receive/", {"quantity": "5"})

        assert response.status_code == 201
        body = response.json()
        assert body["item"]["current_quantity"] == "15.000"
        assert body["movement"]["actor_id"] == actor_id
        assert body["movement"]["previous_quantity"] == "10.000"

    def test_receive_without_actor_is_400(self, flour):
        response = post_json(Client(), f"{BASE}/items/{flour.id}/receive/", {"quantity": "5"})

        assert response.status_code == 400
        assert StockMovement.objects.count() == 0

    def test_adjust_below_zero_is_422(self, client, flour):
        response = post_json(
            client, f"{BASE}/items/{flour.id}/adjust/", {"quantity": "-15", "reason": "count"}
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "INSUFFICIENT_STOCK"
        flour.refresh_from_db()
        assert flour.current_quantity == 10

    def test_adjust_requires_reason(self, client, flour):
        response = post_json(client, f"{BASE}/items/{flour.id}/adjust/", {"quantity": "-1"})

        assert response.status_code == 400

    def test_movement_list_and_detail(self, client, flour):
        post_json(client, f"{BASE}/items/{flour.id}/receive/", {"quantity": "5"})

        response = client.get(f"{BASE}/movements/", {"stock_item_id": flour.id})
        movements = response.json()["movements"]
        assert len(movements) == 1

        response = client.get(f"{BASE}/movements/{movements[0]['id']}/")
        assert response.json()["movement"]["stock_item_name"] == "Flour"

    def test_movement_list_bad_type_is_400(self, client):
        response = client.get(f"{BASE}/movements/", {"type": "stolen"})

        assert response.status_code == 400


class TestImport:

    def test_json_rows(self, client):
        response = post_json(client, f"{BASE}/items/import/", {"rows": [
            {"name": "Flour", "unit_of_measure": "kg"},
            {"name": "", "unit_of_measure": "kg"},
        ]})

        assert response.status_code == 200
        body = response.json()
        assert body["success_count"] == 1
        assert body["error_count"] == 1

    def test_csv_upload(self, client):
        upload = SimpleUploadedFile(
            "stock.csv", b"name,unitOfMeasure,currentQuantity\nFlour,kg,10\nSugar,kg,4\n",
            content_type="text/csv",
        )

        response = client.post(f"{BASE}/items/import/", {"file": upload})

        assert response.json()["success_count"] == 2

    def test_raw_csv_body(self, client):
        response = client.post(
            f"{BASE}/items/import/", data="name,Unit\nFlour,kg\n", content_type="text/csv"
        )

        assert response.json()["success_count"] == 1

    def test_empty_rows_is_400(self, client):
        response = post_json(client, f"{BASE}/items/import/", {"rows": []})

        assert response.status_code == 400


class TestBrandsAndPricing:

    def test_attach_and_set_preferred(self, client, flour, brand_a, brand_b):
        response = post_json(client, f"{BASE}/items/{flour.id}/brands/", {
            "brand_id": brand_a.id, "price_before_tax": "1.80", "price_after_tax": "2.00",
        })
        assert response.status_code == 201
        post_json(client, f"{BASE}/items/{flour.id}/brands/", {
            "brand_id": brand_b.id, "price_before_tax": "1.30", "price_after_tax": "1.50",
        })

        response = client.post(f"{BASE}/items/{flour.id}/brands/{brand_b.id}/preferred/")
        assert response.status_code == 200

        brands = client.get(f"{BASE}/items/{flour.id}/brands/").json()["brands"]
        assert [b["is_preferred"] for b in brands] == [True, False]

    def test_brand_update_ignores_path_keys_in_body(self, client, brand_a):
        response = put_json(client, f"{BASE}/brands/{brand_a.id}/", {"brand_id": 5, "is_active": False})

        assert response.status_code == 200
        assert response.json()["brand"]["is_active"] is False

    def test_force_delete_priced_brand_is_422(self, client, priced_flour, brand_a):
        response = client.delete(f"{BASE}/brands/{brand_a.id}/force/")

        assert response.status_code == 422


class TestRecipeAndCost:

    def test_recipe_and_cost(self, client, priced_flour, brand_b, cake):
        response = post_json(client, f"{BASE}/products/{cake.id}/recipe/", {
            "stock_item_id": priced_flour.id, "quantity": "2",
        })
        assert response.status_code == 201

        response = client.get(f"{BASE}/products/{cake.id}/cost/")

        body = response.json()
        assert body["total_cost"] == "3.00"
        assert body["breakdown"][0]["brand_id"] == brand_b.id

    def test_duplicate_line_is_409(self, client, flour, cake):
        ProductStockService.add_line(cake.id, flour.id, "2")

        response = post_json(client, f"{BASE}/products/{cake.id}/recipe/", {
            "stock_item_id": flour.id, "quantity": "1",
        })

        assert response.status_code == 409

    def test_update_and_remove_line(self, client, flour, cake):
        ProductStockService.add_line(cake.id, flour.id, "2")
        url = f"{BASE}/products/{cake.id}/recipe/{flour.id}/"

        response = put_json(client, url, {"quantity": "3"})
        assert response.json()["line"]["quantity"] == "3.000"

        assert client.delete(url).status_code == 200
        assert client.get(f"{BASE}/products/{cake.id}/recipe/").json()["lines"] == []

    def test_malformed_preferred_brand_is_400(self, client, priced_flour, cake):
        response = post_json(client, f"{BASE}/products/{cake.id}/recipe/", {
            "stock_item_id": priced_flour.id, "quantity": "1", "preferred_brand_id": "abc",
        })

        assert response.status_code == 400

    def test_cost_for_unknown_product_is_404(self, client):
        assert client.get(f"{BASE}/products/999/cost/").status_code == 404
