"""
Locust Load Test Suite

Hammers one trip's seat inventory from many commuters at once and checks
that every seat ends up with at most one booking.

Tokens are minted locally with the service's SECRET_KEY (login is not part
of this API), for user ids COMMUTER_ID_START .. COMMUTER_ID_START+N-1 that
must exist with role 'commuter'.

Run scenarios:
  TRIP_ID=1 locust -f locustfile.py --tags contention   # Many users, few seats
  TRIP_ID=1 locust -f locustfile.py --tags idempotency  # Client retries
  TRIP_ID=1 locust -f locustfile.py                     # All tests

After a contention run, verify:
  SELECT trip_id, seat, COUNT(*) FROM bookings GROUP BY trip_id, seat HAVING COUNT(*) > 1;
Should return no rows.
"""

import itertools
import os
import random
import uuid
from datetime import datetime, timedelta, timezone

import jwt
from locust import HttpUser, task, between, tag, events

SECRET_KEY = os.getenv("SECRET_KEY", "super-secret-key-change-in-production")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
TRIP_ID = int(os.getenv("TRIP_ID", "1"))
HOT_SEATS = int(os.getenv("HOT_SEATS", "10"))
COMMUTER_ID_START = int(os.getenv("COMMUTER_ID_START", "1"))
COMMUTER_COUNT = int(os.getenv("COMMUTER_COUNT", "100"))

_user_ids = itertools.cycle(range(COMMUTER_ID_START, COMMUTER_ID_START + COMMUTER_COUNT))


def mint_token(user_id: int) -> str:
    payload = {
        "sub": str(user_id),
        "role": "commuter",
        "exp": datetime.now(timezone.utc) + timedelta(hours=1),
    }
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print(f"Seat contention on trip {TRIP_ID}: {HOT_SEATS} hot seats, {COMMUTER_COUNT} commuters")
    print("=" * 60)


class CommuterUser(HttpUser):
    wait_time = between(0, 0.1)

    def on_start(self):
        self.user_id = next(_user_ids)
        self.headers = {"Authorization": f"Bearer {mint_token(self.user_id)}"}

    @tag("contention")
    @task(5)
    def book_hot_seat(self):
        """Everyone wants the same handful of seats: expect mostly 409s."""
        seat = random.randint(1, HOT_SEATS)
        with self.client.post(
            "/api/v1/book",
            json={"trip": TRIP_ID, "seats": [seat]},
            headers=self.headers,
            name="/book [hot seat]",
            catch_response=True,
        ) as resp:
            if resp.status_code in (200, 409):
                resp.success()
            else:
                resp.failure(f"unexpected {resp.status_code}: {resp.text}")

    @tag("contention")
    @task(2)
    def view_seat_map(self):
        self.client.get(f"/api/v1/seat?trip={TRIP_ID}", headers=self.headers, name="/seat")

    @tag("idempotency")
    @task(1)
    def retry_with_same_key(self):
        """A timed-out client retries: the second response must not book twice."""
        seat = random.randint(HOT_SEATS + 1, HOT_SEATS + 20)
        headers = {**self.headers, "Idempotency-Key": uuid.uuid4().hex}
        body = {"trip": TRIP_ID, "seats": [seat]}

        first = self.client.post("/api/v1/book", json=body, headers=headers, name="/book [idem first]")
        with self.client.post(
            "/api/v1/book", json=body, headers=headers, name="/book [idem retry]", catch_response=True
        ) as retry:
            if first.status_code == 200 and not retry.json().get("replayed"):
                retry.failure("retry was not replayed")
            elif retry.status_code in (200, 409):
                retry.success()
