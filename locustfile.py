import os
from collections import Counter

from locust import FastHttpUser, between, events, task

PROBE_HOST = os.environ.get("PROBE_TARGET", "example.com")
PROBE_METHOD = os.environ.get("PROBE_METHOD", "https")
API_KEY = os.environ.get("API_KEY", "")

status_counts = Counter()


class ProbeUser(FastHttpUser):
    wait_time = between(0.1, 1)

    @task
    def probe(self):
        params = {"host": PROBE_HOST, "method": PROBE_METHOD}
        if API_KEY:
            params["key"] = API_KEY
        with self.client.get("/", params=params, catch_response=True) as response:
            status_counts[response.status_code] += 1
            # 503 is load shedding by the admission gate, not a failure
            if response.status_code in (200, 503):
                response.success()


@events.test_stop.add_listener
def report_status_counts(environment, **kwargs):
    for status, count in sorted(status_counts.items()):
        print(f"status {status}: {count}")
