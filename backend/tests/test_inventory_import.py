import io
import json

import pytest
from openpyxl import Workbook

from marketcore.errors import ValidationError
from marketcore.services import inventory_import_service, inventory_service


def _xlsx(rows):
    wb = Workbook()
    sheet = wb.active
    for row in rows:
        sheet.append(row)
    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    return buf


class TestNormalizeRow:
    def test_french_headers_and_unit_prices(self):
        fields = inventory_import_service.normalize_row({
            "SKU": "HUILE-5L", "Nom": "Huile 5L", "prix_cout": "7,50", "prix_vente": 9, "quantity": "12",
        })
        assert fields["sku"] == "HUILE-5L"
        assert fields["name"] == "Huile 5L"
        assert fields["cost_price_cents"] == 750
        assert fields["selling_price_cents"] == 900
        assert fields["stock"] == 12
        assert fields["low_stock_threshold"] == inventory_import_service.DEFAULT_LOW_STOCK_THRESHOLD
        assert fields["category"] == "general"

    def test_cents_columns_win_over_unit_aliases(self):
        fields = inventory_import_service.normalize_row({
            "sku": "A", "name": "B", "selling_price_cents": 125, "price": 99,
        })
        assert fields["selling_price_cents"] == 125

    def test_sku_and_name_required(self):
        with pytest.raises(ValidationError):
            inventory_import_service.normalize_row({"name": "No sku"})
        with pytest.raises(ValidationError):
            inventory_import_service.normalize_row({"sku": "NO-NAME"})

    def test_unreadable_number(self):
        with pytest.raises(ValidationError):
            inventory_import_service.normalize_row({"sku": "A", "name": "B", "stock": "lots"})

    @pytest.mark.parametrize("value", ["inf", "-inf", "nan", "1e999", float("inf")])
    def test_non_finite_numbers_rejected(self, value):
        for column in ("stock", "threshold", "price", "cost_price_cents"):
            with pytest.raises(ValidationError):
                inventory_import_service.normalize_row({"sku": "A", "name": "B", column: value})

    def test_huge_price_is_out_of_range(self):
        with pytest.raises(ValidationError):
            inventory_import_service.normalize_row({"sku": "A", "name": "B", "price": "1e307"})

    def test_fractional_quantities_rejected(self):
        with pytest.raises(ValidationError):
            inventory_import_service.normalize_row({"sku": "A", "name": "B", "stock": "1.7"})
        with pytest.raises(ValidationError):
            inventory_import_service.normalize_row({"sku": "A", "name": "B", "threshold": 2.5})
        fields = inventory_import_service.normalize_row({"sku": "A", "name": "B", "stock": 3.0, "threshold": "4"})
        assert (fields["stock"], fields["low_stock_threshold"]) == (3, 4)


class TestImport:
    def test_xlsx_upload(self, app):
        upload = _xlsx([
            ["sku", "name", "category", "cost", "price", "stock", "threshold", "barcode"],
            ["EAU-1", "Eau 1.5L", "drinks", 0.4, 0.7, 50, 10, "6130000000011"],
            [None, None, None, None, None, None, None, None],
            ["PAIN", "Pain", "bakery", 0.1, 0.15, 3, 5, None],
        ])
        result = inventory_import_service.import_inventory_file("stock.xlsx", upload)

        assert result["imported"] == 2
        assert result["errors"] == []
        water = inventory_service.find_by_barcode("6130000000011")
        assert (water.stock, water.cost_price_cents, water.selling_price_cents) == (50, 40, 70)
        assert [p.sku for p in inventory_service.get_low_stock()] == ["PAIN"]

    def test_bad_rows_are_reported_not_fatal(self, app, make_inventory_product):
        make_inventory_product()  # takes SKU-001
        rows = [
            {"sku": "SKU-001", "name": "Duplicate"},
            {"sku": "OK-1", "name": "Fine", "price": 2},
            {"sku": "NEG", "name": "Negative", "cost": -1},
            {"name": "Missing sku"},
        ]
        result = inventory_import_service.import_inventory_rows(rows)

        assert result["imported"] == 1
        assert [e["row"] for e in result["errors"]] == [2, 4, 5]
        assert inventory_service.get_inventory_product(result["product_ids"][0]).sku == "OK-1"

    def test_overflowing_row_does_not_stop_the_import(self, app):
        rows = [
            {"sku": "A", "name": "First"},
            {"sku": "B", "name": "Broken", "stock": "inf"},
            {"sku": "C", "name": "Third", "price": "1e999"},
            {"sku": "D", "name": "Fourth"},
        ]
        result = inventory_import_service.import_inventory_rows(rows)

        assert result["imported"] == 2
        assert [e["row"] for e in result["errors"]] == [3, 4]
        skus = [inventory_service.get_inventory_product(pid).sku for pid in result["product_ids"]]
        assert skus == ["A", "D"]

    def test_xlsx_errors_keep_sheet_row_numbers(self, app):
        upload = _xlsx([
            ["sku", "name"],
            ["A", "First"],
            [None, None],
            ["A", "Duplicate"],
        ])
        result = inventory_import_service.import_inventory_file("stock.xlsx", upload)

        assert result["imported"] == 1
        assert [e["row"] for e in result["errors"]] == [4]

    def test_csv_errors_keep_line_numbers(self, app):
        upload = io.BytesIO(b"sku,name\nA,First\n\n,Nameless\n")
        result = inventory_import_service.import_inventory_file("stock.csv", upload)
        assert [e["row"] for e in result["errors"]] == [4]

    def test_unsupported_format(self, app):
        with pytest.raises(ValidationError):
            inventory_import_service.parse_upload("stock.pdf", io.BytesIO(b"%PDF"))

    def test_corrupt_xlsx(self, app):
        with pytest.raises(ValidationError):
            inventory_import_service.parse_upload("stock.xlsx", io.BytesIO(b"not a zip"))


class TestImportSurfaces:
    def test_route_accepts_csv(self, client):
        data = {"file": (io.BytesIO(b"sku,name,price,stock\nCSV-1,Sucre,1.20,7\n"), "stock.csv")}
        response = client.post("/api/inventory/import", data=data, content_type="multipart/form-data")
        assert response.status_code == 201
        assert response.get_json()["imported"] == 1

    def test_route_accepts_json(self, client):
        body = json.dumps({"rows": [{"sku": "J-1", "name": "Lait"}]}).encode()
        data = {"file": (io.BytesIO(body), "stock.json")}
        response = client.post("/api/inventory/import", data=data, content_type="multipart/form-data")
        assert response.status_code == 201
        assert response.get_json()["product_ids"] == [1]

    def test_route_requires_file(self, client):
        assert client.post("/api/inventory/import", data={}).status_code == 400

    def test_cli_import(self, app, tmp_path):
        path = tmp_path / "stock.csv"
        path.write_text("sku,name,stock\nCLI-1,Farine,4\n,Nameless,1\n", encoding="utf-8")

        result = app.test_cli_runner().invoke(args=["inventory", "import", str(path)])
        assert result.exit_code == 0
        assert "Imported 1 product(s)" in result.output
        assert "FAIL row 3" in result.output
