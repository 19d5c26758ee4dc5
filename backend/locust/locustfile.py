"""
Locust Load Test Suite

Needs at least one AVAILABLE instrument in the catalog (create it as admin
before starting).

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Race for one instrument and one meeting
  locust -f locustfile.py --tags throughput   # Test catalog cache
  locust -f locustfile.py --tags edge         # Test bad input
  locust -f locustfile.py                     # All tests
"""

import random
import string
from datetime import date, timedelta

from locust import HttpUser, between, events, tag, task

PASSWORD = "loadtest123"

# Shared state
INSTRUMENT_IDS = []
CONTESTED_INSTRUMENT_ID = None
CONTESTED_MEETING_ID = None


def random_email():
    return f"load_{random.randint(100000, 999999)}@test.com"


def random_name():
    return "u_" + "".join(random.choices(string.ascii_lowercase, k=8))


def random_range(base: date, spread: int = 30, max_len: int = 4):
    start = base + timedelta(days=random.randint(0, spread))
    return start, start + timedelta(days=random.randint(0, max_len))


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print("SETUP: members register on start, the first one picks the contested instrument")
    print("=" * 60)


def sign_up(client) -> dict:
    resp = client.post("/api/v1/auth/register", json={
        "name": random_name(),
        "email": random_email(),
        "password": PASSWORD,
        "password_confirmation": PASSWORD,
    })
    if resp.status_code == 201:
        return {"Authorization": f"Bearer {resp.json()['token']}"}
    return {}


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - many members, one instrument, one meeting

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify no two ACTIVE reservations of the instrument overlap:
      SELECT a.id, b.id FROM reservations a JOIN reservations b
        ON a.instrument_id = b.instrument_id AND a.id < b.id
       WHERE a.instrument_id = X AND a.status = 'ACTIVE' AND b.status = 'ACTIVE'
         AND a.start_date <= b.end_date AND b.start_date <= a.end_date;
    Should return no rows. And the contested meeting never exceeds capacity:
      SELECT COUNT(*) FROM meeting_users WHERE meeting_id = Y;
    Should be <= MEETING_CAPACITY
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        global CONTESTED_INSTRUMENT_ID
        self.headers = sign_up(self.client)
        self.reservation_id = None

        if CONTESTED_INSTRUMENT_ID is None:
            resp = self.client.get("/api/v1/instruments/?status=AVAILABLE")
            if resp.status_code == 200 and resp.json():
                CONTESTED_INSTRUMENT_ID = resp.json()[0]["id"]
                print(f"\n✓ Contested instrument {CONTESTED_INSTRUMENT_ID}\n")

    @tag("concurrency")
    @task(3)
    def reserve_contested_instrument(self):
        """Everyone fights for overlapping days on the same instrument."""
        if not CONTESTED_INSTRUMENT_ID or not self.headers:
            return

        start, end = random_range(date.today() + timedelta(days=7))
        with self.client.post(
            f"/api/v1/instruments/{CONTESTED_INSTRUMENT_ID}/reserve",
            json={"start_date": start.isoformat(), "end_date": end.isoformat()},
            headers=self.headers,
            name="/api/v1/instruments/{id}/reserve",
            catch_response=True,
        ) as resp:
            if resp.status_code == 201:
                self.reservation_id = resp.json()["id"]
                resp.success()
            elif resp.status_code == 409:
                resp.success()  # Expected: days already taken
            else:
                resp.failure(f"Unexpected: {resp.status_code}")

    @tag("concurrency")
    @task(2)
    def join_contested_meeting(self):
        """Everyone tries to squeeze into the same rehearsal."""
        global CONTESTED_MEETING_ID
        if not self.headers:
            return

        if CONTESTED_MEETING_ID is None:
            if not self.reservation_id:
                return
            resp = self.client.post("/api/v1/meetings/", json={
                "reservation_id": self.reservation_id,
                "room": "SPRINGSTEEN",
                "day": (date.today() + timedelta(days=3)).isoformat(),
                "start_time": "18:00",
                "end_time": "20:00",
            }, headers=self.headers)
            if resp.status_code == 201:
                CONTESTED_MEETING_ID = resp.json()["id"]
                print(f"\n✓ Contested meeting {CONTESTED_MEETING_ID}\n")
            return

        with self.client.post(
            f"/api/v1/meetings/{CONTESTED_MEETING_ID}/join",
            headers=self.headers,
            name="/api/v1/meetings/{id}/join",
            catch_response=True,
        ) as resp:
            if resp.status_code in (200, 409):
                resp.success()  # 409: full or already joined
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - Cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: Stop Redis, run again

    Compare:
      - Avg response time
      - Requests/sec
      - P95/P99 latency
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def list_instruments_cached(self):
        """Hammer the cached endpoint."""
        instrument_type = random.choice(["", "STRING", "WIND", "PERCUSSION", "KEYBOARD"])
        query = f"?type={instrument_type}" if instrument_type else ""
        resp = self.client.get(f"/api/v1/instruments/{query}", name="/api/v1/instruments/ [cached]")
        if resp.status_code == 200:
            for instrument in resp.json():
                if instrument["id"] not in INSTRUMENT_IDS:
                    INSTRUMENT_IDS.append(instrument["id"])

    @tag("throughput", "read")
    @task(3)
    def get_instrument_detail(self):
        if INSTRUMENT_IDS:
            self.client.get(
                f"/api/v1/instruments/{random.choice(INSTRUMENT_IDS)}",
                name="/api/v1/instruments/{id}",
            )

    @tag("throughput")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def on_start(self):
        self.headers = sign_up(self.client)

    def _expect(self, resp, codes):
        if resp.status_code in codes:
            resp.success()
        else:
            resp.failure(f"Expected {codes}, got {resp.status_code}")

    @tag("edge")
    @task
    def unknown_instrument(self):
        with self.client.post(
            "/api/v1/instruments/999999/reserve",
            json={"start_date": "2030-01-01", "end_date": "2030-01-02"},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, [404])

    @tag("edge")
    @task
    def inverted_range(self):
        with self.client.post(
            "/api/v1/instruments/1/reserve",
            json={"start_date": "2030-01-05", "end_date": "2030-01-01"},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, [404, 422])

    @tag("edge")
    @task
    def empty_meeting_slot(self):
        with self.client.post(
            "/api/v1/meetings/",
            json={
                "reservation_id": 1,
                "room": "DYLAN",
                "day": "2030-01-01",
                "start_time": "19:00",
                "end_time": "19:00",
            },
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, [422])

    @tag("edge")
    @task
    def unknown_room(self):
        with self.client.post(
            "/api/v1/meetings/",
            json={
                "reservation_id": 1,
                "room": "GARAGE",
                "day": "2030-01-01",
                "start_time": "18:00",
                "end_time": "19:00",
            },
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, [422])

    @tag("edge")
    @task
    def member_changes_meeting_status(self):
        with self.client.patch(
            "/api/v1/meetings/1/status",
            json={"status": "CANCELLED"},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, [403])

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post(
            "/api/v1/meetings/",
            data="not json at all",
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, [400, 422])

    @tag("edge")
    @task
    def missing_auth(self):
        with self.client.post(
            "/api/v1/instruments/1/reserve",
            json={"start_date": "2030-01-01", "end_date": "2030-01-02"},
            catch_response=True,
        ) as resp:
            self._expect(resp, [401])


class RealisticUser(HttpUser):
    """
    TEST 4: Realistic mixed workload

    Run: locust -f locustfile.py -u 200 -r 20 --run-time 120s

    Simulates real traffic:
      - Mostly browsing the catalog and calendar
      - Some reservations and meeting joins
      - Rare returns
    """
    wait_time = between(1, 3)

    def on_start(self):
        self.headers = sign_up(self.client)
        self.reservations = []

    @task(40)
    def browse_catalog(self):
        resp = self.client.get("/api/v1/instruments/")
        if resp.status_code == 200:
            for instrument in resp.json():
                if instrument["id"] not in INSTRUMENT_IDS:
                    INSTRUMENT_IDS.append(instrument["id"])

    @task(15)
    def check_availability(self):
        if INSTRUMENT_IDS and self.headers:
            self.client.get(
                f"/api/v1/instruments/{random.choice(INSTRUMENT_IDS)}/availability",
                headers=self.headers,
                name="/api/v1/instruments/{id}/availability",
            )

    @task(10)
    def view_calendar(self):
        if self.headers:
            self.client.get("/api/v1/calendar/", headers=self.headers)

    @task(8)
    def reserve(self):
        if INSTRUMENT_IDS and self.headers:
            start, end = random_range(date.today() + timedelta(days=1), spread=90)
            resp = self.client.post(
                f"/api/v1/instruments/{random.choice(INSTRUMENT_IDS)}/reserve",
                json={"start_date": start.isoformat(), "end_date": end.isoformat()},
                headers=self.headers,
                name="/api/v1/instruments/{id}/reserve",
            )
            if resp.status_code == 201:
                self.reservations.append(resp.json()["id"])

    @task(5)
    def join_available_meeting(self):
        if not self.headers:
            return
        resp = self.client.get("/api/v1/meetings/available", headers=self.headers)
        if resp.status_code == 200 and resp.json():
            meeting_id = random.choice(resp.json())["id"]
            self.client.post(
                f"/api/v1/meetings/{meeting_id}/join",
                headers=self.headers,
                name="/api/v1/meetings/{id}/join",
            )

    @task(2)
    def return_reservation(self):
        if self.reservations and self.headers:
            reservation_id = self.reservations.pop(0)
            self.client.post(
                f"/api/v1/reservations/{reservation_id}/return",
                headers=self.headers,
                name="/api/v1/reservations/{id}/return",
            )
