import unittest
from datetime import date

from fastapi.testclient import TestClient

from subtracker.main import app, get_today

TODAY = date(2025, 1, 11)


class ApiTests(unittest.TestCase):
    def setUp(self) -> None:
        app.dependency_overrides[get_today] = lambda: TODAY
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()

    def _subscriptions(self) -> dict:
        return {
            "subscriptions": [
                {
                    "id": 1,
                    "merchant_name": "Gym",
                    "amount": "10.00",
                    "renewal_date": "2025-01-01",
                    "billing_cycle": "weekly",
                },
                {
                    "id": 2,
                    "merchant_name": "Notion",
                    "amount": "120.00",
                    "currency": "usd",
                    "renewal_date": "2025-03-01",
                    "billing_cycle": "yearly",
                },
                {
                    "id": 3,
                    "merchant_name": "Hulu",
                    "amount": "7.99",
                    "renewal_date": "2024-06-01",
                    "status": "cancelled",
                },
                {
                    "id": 4,
                    "merchant_name": "Broken",
                    "amount": "3.00",
                    "renewal_date": "2025-02-30",
                },
            ]
        }

    def test_health(self) -> None:
        response = self.client.get("/health")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})

    def test_effective_renewals(self) -> None:
        response = self.client.post("/renewals/effective", json=self._subscriptions())

        self.assertEqual(response.status_code, 200)
        body = {item["id"]: item for item in response.json()}
        self.assertEqual(body["1"]["effective_renewal_date"], "2025-01-15")
        self.assertEqual(body["1"]["status"], "renews_soon")
        self.assertEqual(body["1"]["days_until"], 4)
        self.assertEqual(body["2"]["status"], "active")
        self.assertEqual(body["2"]["billing_cycle"], "yearly")
        self.assertEqual(body["3"]["status"], "cancelled")
        self.assertEqual(body["3"]["effective_renewal_date"], "2024-06-01")
        self.assertEqual(body["4"]["status"], "invalid")
        self.assertIsNone(body["4"]["effective_renewal_date"])

    def test_upcoming_renewals(self) -> None:
        response = self.client.post("/renewals/upcoming", json=self._subscriptions())

        self.assertEqual(response.status_code, 200)
        self.assertEqual([item["id"] for item in response.json()], ["1"])

    def test_spend_summary(self) -> None:
        response = self.client.post("/spend/summary", json=self._subscriptions())

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["active_count"], 3)
        self.assertEqual(body["cancelled_count"], 1)
        self.assertEqual(body["expired_count"], 0)
        self.assertEqual(len(body["totals"]), 1)
        totals = body["totals"][0]
        self.assertEqual(totals["currency"], "USD")
        self.assertEqual(totals["monthly"], "56.33")
        self.assertEqual(totals["yearly"], "676.00")
        self.assertEqual(body["status_counts"]["invalid"], 1)
        self.assertEqual(body["status_counts"]["renews_soon"], 1)

    def test_spend_summary_leaves_out_lapsed_subscriptions(self) -> None:
        payload = {
            "subscriptions": [
                {
                    "merchant_name": "Course",
                    "amount": "10.00",
                    "renewal_date": "2024-01-01",
                    "auto_renew": False,
                }
            ]
        }

        response = self.client.post("/spend/summary", json=payload)

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["totals"], [])
        self.assertEqual(body["active_count"], 0)
        self.assertEqual(body["expired_count"], 1)
        self.assertEqual(body["status_counts"]["expired"], 1)

    def test_anchor_that_cannot_be_advanced_does_not_fail_the_batch(self) -> None:
        payload = self._subscriptions()
        payload["subscriptions"].append(
            {
                "id": 5,
                "merchant_name": "Far",
                "amount": "1.00",
                "renewal_date": "2020-01-01",
                "billing_cycle": "custom",
                "custom_interval_value": 10000,
                "custom_interval_unit": "years",
            }
        )

        effective = self.client.post("/renewals/effective", json=payload)
        summary = self.client.post("/spend/summary", json=payload)
        forecast = self.client.post("/forecast?days=14", json=payload)
        reminders = self.client.post("/reminders/due", json=payload)

        self.assertEqual(effective.status_code, 200)
        body = {item["id"]: item for item in effective.json()}
        self.assertEqual(body["5"]["status"], "needs_review")
        self.assertIsNone(body["5"]["effective_renewal_date"])
        self.assertEqual(body["1"]["effective_renewal_date"], "2025-01-15")
        self.assertEqual(summary.status_code, 200)
        self.assertEqual(summary.json()["status_counts"]["needs_review"], 1)
        self.assertEqual(forecast.status_code, 200)
        self.assertEqual(
            [entry["date"] for entry in forecast.json()["entries"]],
            ["2025-01-15", "2025-01-22"],
        )
        self.assertEqual(reminders.status_code, 200)
        self.assertEqual(reminders.json()["skipped_invalid"], 2)

    def test_forecast(self) -> None:
        response = self.client.post("/forecast?days=14", json=self._subscriptions())

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["range_end"], "2025-01-25")
        self.assertEqual(
            [entry["date"] for entry in body["entries"]],
            ["2025-01-15", "2025-01-22"],
        )
        self.assertEqual(body["totals"], {"USD": "20.00"})

    def test_due_reminders_with_dedupe(self) -> None:
        payload = self._subscriptions()
        payload["subscriptions"][0]["renewal_date"] = "2025-01-13"
        payload["subscriptions"][0]["last_reminded_renewal_date"] = "2025-01-13"

        response = self.client.post("/reminders/due", json=payload)
        test_mode = self.client.post("/reminders/due?mode=test", json=payload)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["reminders"], [])
        self.assertEqual(response.json()["skipped_already_reminded"], 1)
        self.assertEqual(response.json()["skipped_invalid"], 1)
        self.assertEqual(len(test_mode.json()["reminders"]), 1)
        self.assertEqual(test_mode.json()["reminders"][0]["renewal_date"], "2025-01-13")

    def test_cadence_preview(self) -> None:
        response = self.client.get(
            "/cadences/preview",
            params={
                "billing_cycle": "custom",
                "interval": 10,
                "unit": "days",
                "start_date": "2025-01-01",
                "count": 4,
            },
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json(),
            {
                "billing_cycle": "custom:10:days",
                "dates": ["2025-01-01", "2025-01-11", "2025-01-21", "2025-01-31"],
            },
        )

    def test_cadence_preview_defaults_to_today(self) -> None:
        response = self.client.get("/cadences/preview", params={"billing_cycle": "monthly", "count": 2})

        self.assertEqual(response.json()["dates"], ["2025-01-11", "2025-02-11"])

    def test_cadence_preview_rejects_unknown_cycle(self) -> None:
        response = self.client.get("/cadences/preview", params={"billing_cycle": "hourly"})

        self.assertEqual(response.status_code, 400)

    def test_cadence_preview_rejects_dates_past_the_last_year(self) -> None:
        response = self.client.get(
            "/cadences/preview",
            params={"billing_cycle": "yearly", "start_date": "9990-01-01", "count": 20},
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn("out of range", response.json()["detail"])

    def test_rejects_non_positive_amount(self) -> None:
        payload = self._subscriptions()
        payload["subscriptions"][1]["amount"] = "0"

        response = self.client.post("/spend/summary", json=payload)

        self.assertEqual(response.status_code, 400)
        self.assertIn("Subscription 1", response.json()["detail"])

    def test_rejects_bad_currency(self) -> None:
        payload = self._subscriptions()
        payload["subscriptions"][0]["currency"] = "dollars"

        response = self.client.post("/renewals/effective", json=payload)

        self.assertEqual(response.status_code, 400)


class TodayDependencyTests(unittest.TestCase):
    def test_unknown_timezone_header_is_rejected(self) -> None:
        client = TestClient(app)

        response = client.get(
            "/cadences/preview",
            params={"billing_cycle": "monthly"},
            headers={"x-timezone": "Nowhere/Special"},
        )

        self.assertEqual(response.status_code, 400)


if __name__ == "__main__":
    unittest.main()
