import io
import os
import tempfile
import unittest

from openpyxl import load_workbook

from fakes import SAMPLE_RECORDS, FakeMySQL

from app import create_app, load_schema
from config import Config
from entities import ENTITIES


class ApiTests(unittest.TestCase):
	def setUp(self) -> None:
		self.db = FakeMySQL()
		self.app = create_app({"TESTING": True}, db=self.db)
		self.client = self.app.test_client()

	def tearDown(self) -> None:
		self.db.close()

	def _create(self, prefix, payload):
		r = self.client.post(f"/{prefix}/create", json=payload)
		self.assertEqual(r.status_code, 201, r.get_json())
		return r.get_json()

	def test_health(self):
		resp = self.client.get("/health")
		self.assertEqual(resp.status_code, 200)
		self.assertEqual(resp.get_json(), {"status": "ok"})

	def test_store_created_once_then_conflict(self):
		payload = {"name": "Downtown", "location": "5th Ave"}
		r = self.client.post("/stores/create", json=payload)
		self.assertEqual(r.status_code, 201)
		self.assertEqual(r.get_json(), {"store_id": 1, "name": "Downtown", "location": "5th Ave"})
		self.assertTrue(r.headers["Location"].endswith("/stores/all"))

		r = self.client.post("/stores/create", json=payload)
		self.assertEqual(r.status_code, 409)
		self.assertEqual(r.get_json(), {"message": "There exist such a store in that location"})

	def test_delete_unknown_store_is_404(self):
		r = self.client.delete("/stores/delete/999")
		self.assertEqual(r.status_code, 404)
		self.assertEqual(r.get_json(), {"message": "No such store found"})

	def test_empty_collection_is_404(self):
		r = self.client.get("/products/all")
		self.assertEqual(r.status_code, 404)
		self.assertEqual(r.get_json(), {"message": "No products found"})

	def test_get_all_alias(self):
		self._create("products", {"name": "Soap", "price": 120})
		r = self.client.get("/products/get-all")
		self.assertEqual(r.status_code, 200)
		self.assertEqual(len(r.get_json()), 1)

	def test_validation_errors_are_400(self):
		r = self.client.post("/customers/create", json={"name": "Ann", "location": "Kisumu"})
		self.assertEqual(r.status_code, 400)
		self.assertEqual(r.get_json(), {"message": "phone_no is required"})

		r = self.client.post("/products/create", json={"name": "Soap", "price": "cheap"})
		self.assertEqual(r.status_code, 400)

		r = self.client.put("/products/update", json={"name": "Soap", "price": 1})
		self.assertEqual(r.status_code, 400)

		r = self.client.post("/stores/create", data="not json", content_type="text/plain")
		self.assertEqual(r.status_code, 400)
		self.assertIn("message", r.get_json())

	def test_update_unknown_is_404(self):
		r = self.client.put("/sales-reps/update", json={"sales_rep_id": 5, "name": "Jo", "phone_no": "1"})
		self.assertEqual(r.status_code, 404)
		self.assertEqual(r.get_json(), {"message": "Sales rep not found"})

	def test_unknown_route_uses_json_error(self):
		r = self.client.get("/nothing-here")
		self.assertEqual(r.status_code, 404)
		self.assertIn("message", r.get_json())

	def test_storage_failure_is_500_without_details(self):
		self.db.raw.execute("DROP TABLE debt")
		r = self.client.get("/debts/all")
		self.assertEqual(r.status_code, 500)
		self.assertEqual(r.get_json(), {"message": "Failed to retrieve debts"})

	def test_full_crud_flow(self):
		customer = self._create("customers", {"name": "Ann", "phone_no": "0700", "location": "Kisumu"})
		product = self._create("products", {"name": "Soap", "price": 120})
		rep = self._create("sales-reps", {"name": "Jo", "phone_no": "0711"})
		rep2 = self._create("sales-reps", {"name": "Kim", "phone_no": "0722"})
		pair = self._create("sales-pairs", {
			"sales_rep_id_one": rep["sales_rep_id"],
			"sales_rep_id_two": rep2["sales_rep_id"],
			"paired_date": "2024-08-01T08:00:00",
		})
		store = self._create("stores", {"name": "Downtown", "location": "5th Ave"})
		self._create("stocks", {
			"store_id": store["store_id"],
			"amount": 10,
			"product_id": product["product_id"],
			"quantity": 10,
			"product_worth": 1200,
		})
		debt = self._create("debts", {
			"customer_id": customer["customer_id"],
			"amount": 300,
			"date": "2024-08-01",
			"paid_date": None,
			"is_paid": False,
		})
		sale = self._create("sales", {
			"customer_id": customer["customer_id"],
			"sales_pair_id": pair["sales_pair_id"],
			"sales_rep_id": None,
			"total_price": 240,
			"sales_time": "2024-08-01 12:00:00",
			"product_id": product["product_id"],
			"product_quantity": 2,
		})

		# Read sale
		r = self.client.get(f"/sales/by-id/{sale['sales_id']}")
		self.assertEqual(r.status_code, 200)
		self.assertEqual(r.get_json(), sale)

		# Update debt
		debt.update({"paid_date": "2024-08-10", "is_paid": True})
		r = self.client.put("/debts/update", json=debt)
		self.assertEqual(r.status_code, 200)
		self.assertEqual(r.get_json(), debt)

		# Download both formats
		r = self.client.get("/download?format=csv")
		self.assertEqual(r.status_code, 200)
		self.assertIn("text/csv", r.headers["Content-Type"])
		self.assertIn("attachment;", r.headers["Content-Disposition"])
		lines = r.get_data(as_text=True).splitlines()
		self.assertEqual(lines[1], "Ann,240,2024-08-01 12:00:00,Soap,120,2")

		r = self.client.get("/download?format=xlsx")
		self.assertEqual(r.status_code, 200)
		ws = load_workbook(io.BytesIO(r.get_data())).active
		self.assertEqual(ws.max_row, 2)

		# Cleanup
		for path in (
			f"/sales/delete/{sale['sales_id']}",
			f"/debts/delete/{debt['debt_id']}",
			f"/sales-pairs/delete/{pair['sales_pair_id']}",
			f"/customers/delete/{customer['customer_id']}",
		):
			r = self.client.delete(path)
			self.assertEqual(r.status_code, 200, path)
			self.assertIs(r.get_json(), True)
		self.assertEqual(self.client.get(f"/sales/by-id/{sale['sales_id']}").status_code, 404)

	def test_download_rejects_unknown_format(self):
		r = self.client.get("/download?format=pdf")
		self.assertEqual(r.status_code, 400)
		self.assertEqual(r.get_json(), {"message": "format must be 'csv' or 'xlsx'"})
		self.assertEqual(self.client.get("/download").status_code, 400)

	def test_download_with_dangling_reference_is_500(self):
		self.db.raw.execute(
			"INSERT INTO sales (customer_id, total_price, sales_time, product_id, product_quantity) "
			"VALUES (9, 10, '2024-08-01 00:00:00', 9, 1)"
		)
		self.db.raw.commit()
		r = self.client.get("/download?format=csv")
		self.assertEqual(r.status_code, 500)
		self.assertEqual(r.get_json(), {"message": "Failed to generate file"})

	def test_fractional_price_is_rejected_not_truncated(self):
		r = self.client.post("/products/create", json={"name": "Soap", "price": 12.99})
		self.assertEqual(r.status_code, 400)
		self.assertEqual(r.get_json(), {"message": "price must be an integer"})
		self.assertEqual(self.db.count("product"), 0)

		product = self._create("products", {"name": "Soap", "price": 12})
		r = self.client.put("/products/update", json={"product_id": product["product_id"], "name": "Soap", "price": 12.5})
		self.assertEqual(r.status_code, 400)
		self.assertEqual(self.client.get(f"/products/by-id/{product['product_id']}").get_json(), product)

	def test_whole_float_is_accepted_as_integer(self):
		product = self._create("products", {"name": "Soap", "price": 13.0})
		self.assertEqual(product["price"], 13)

	def test_timezone_aware_datetime_is_rejected(self):
		r = self.client.post("/sales-pairs/create", json={
			"sales_rep_id_one": 1,
			"sales_rep_id_two": 2,
			"paired_date": "2024-08-01T12:00:00+03:00",
		})
		self.assertEqual(r.status_code, 400)
		self.assertEqual(r.get_json(), {"message": "paired_date must not carry a timezone offset"})
		self.assertEqual(self.db.count("sales_pair"), 0)

	def test_every_entity_over_http(self):
		for entity in ENTITIES:
			with self.subTest(entity=entity.name):
				base = f"/{entity.prefix}"
				first, second = SAMPLE_RECORDS[entity.name]

				created = self._create(entity.prefix, first)
				record_id = created[entity.id_column]
				r = self.client.get(f"{base}/by-id/{record_id}")
				self.assertEqual(r.status_code, 200)
				self.assertEqual(r.get_json(), created)

				replacement = dict(second, **{entity.id_column: record_id})
				r = self.client.put(f"{base}/update", json=replacement)
				self.assertEqual(r.status_code, 200)
				self.assertEqual(r.get_json(), replacement)

				r = self.client.put(f"{base}/update", json=dict(first, **{entity.id_column: record_id + 100}))
				self.assertEqual(r.status_code, 404)
				self.assertEqual(r.get_json(), {"message": entity.not_found_message})
				self.assertEqual(self.client.get(f"{base}/all").get_json(), [replacement])

				r = self.client.delete(f"{base}/delete/{record_id}")
				self.assertEqual(r.status_code, 200)
				self.assertIs(r.get_json(), True)
				self.assertEqual(self.client.get(f"{base}/by-id/{record_id}").status_code, 404)
				self.assertEqual(self.client.get(f"{base}/all").status_code, 404)


class SchemaTests(unittest.TestCase):
	def test_shipped_schema_defines_every_table(self):
		statements = load_schema(Config.SCHEMA_PATH)
		self.assertEqual(len(statements), 8)
		for table in ("store", "customer", "product", "sales_rep", "sales_pair", "stock_record", "debt", "sales"):
			self.assertTrue(
				any(s.startswith(f"CREATE TABLE IF NOT EXISTS {table} (") for s in statements),
				table,
			)

	def test_init_db_command_applies_schema(self):
		db = FakeMySQL(with_schema=False)
		self.addCleanup(db.close)
		with tempfile.NamedTemporaryFile("w", suffix=".sql", delete=False) as fh:
			fh.write("-- demo\nCREATE TABLE store (store_id INTEGER PRIMARY KEY, name TEXT, location TEXT);\n")
			fh.write("CREATE TABLE product (product_id INTEGER PRIMARY KEY, name TEXT, price INTEGER);\n")
		self.addCleanup(os.unlink, fh.name)

		app = create_app({"TESTING": True, "SCHEMA_PATH": fh.name}, db=db)
		result = app.test_cli_runner().invoke(args=["init-db"])
		self.assertEqual(result.exit_code, 0, result.output)
		self.assertIn("Applied 2 schema statements.", result.output)
		self.assertEqual(db.count("product"), 0)


if __name__ == "__main__":
	unittest.main()
