import os

from locust import HttpUser, task, between

class BookingUser(HttpUser):
    wait_time = between(1, 3)

    def on_start(self):
        # identity is forwarded by the gateway; point this at a seeded active user
        self.headers = {"X-User-Id": os.environ["LOAD_USER_ID"]}
        r = self.client.get("/api/services", headers=self.headers)
        services = r.json() if r.status_code == 200 else []
        self.service_id = next(
            (s["id"] for s in services if s.get("effective_price") is not None), None
        )

    @task(3)
    def list_bookings(self):
        self.client.get("/api/bookings", headers=self.headers)

    @task(1)
    def draft_booking(self):
        r = self.client.post("/api/bookings", json={}, headers=self.headers)
        if r.status_code != 201 or not self.service_id:
            return
        booking_id = r.json()["booking_id"]
        data = {"service_items": [{"service_id": self.service_id, "quantity": 2}]}
        self.client.put(
            f"/api/bookings/{booking_id}",
            json=data,
            headers=self.headers,
            name="/api/bookings/[id]",
        )
