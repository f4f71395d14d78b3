import datetime
import threading

from gumdash.call_log import CallHistory, CallRecord


def make_record(n: int, duration: float = 0.01) -> CallRecord:
    return CallRecord(method="GET", url=f"https://api.example.test/v2/items/{n}", status=200, duration=duration)


def test_history_evicts_oldest_beyond_capacity():
    history = CallHistory(capacity=100)
    for n in range(1, 106):
        history.append(make_record(n))

    rows = history.snapshot()
    assert len(rows) == 100
    assert len(history) == 100
    assert rows[0].url.endswith("/items/105")
    assert rows[-1].url.endswith("/items/6")


def test_snapshot_is_newest_first():
    history = CallHistory(capacity=10)
    for n in range(5):
        history.append(make_record(n))
    urls = [row.url for row in history.snapshot()]
    assert urls == [f"https://api.example.test/v2/items/{n}" for n in (4, 3, 2, 1, 0)]


def test_snapshot_is_detached_from_later_appends():
    history = CallHistory(capacity=3)
    history.append(make_record(1))
    first = history.snapshot()
    history.append(make_record(2))
    history.append(make_record(3))
    history.append(make_record(4))
    assert [row.url[-1] for row in first] == ["1"]
    first.clear()
    assert len(history.snapshot()) == 3


def test_snapshot_twice_without_append_is_equal():
    history = CallHistory(capacity=5)
    for n in range(3):
        history.append(make_record(n))
    assert history.snapshot() == history.snapshot()


def test_capacity_is_at_least_one():
    history = CallHistory(capacity=0)
    history.append(make_record(1))
    history.append(make_record(2))
    assert [row.url[-1] for row in history.snapshot()] == ["2"]


def test_clear_empties_history():
    history = CallHistory()
    history.append(make_record(1))
    history.clear()
    assert history.snapshot() == []


def test_concurrent_appends_lose_nothing():
    history = CallHistory(capacity=10_000)
    threads = []

    def worker(offset):
        for n in range(200):
            history.append(make_record(offset * 1000 + n, duration=0.001 * n))

    for i in range(16):
        t = threading.Thread(target=worker, args=(i,))
        threads.append(t)
        t.start()
    for t in threads:
        t.join(timeout=5)
        assert not t.is_alive()

    rows = history.snapshot()
    assert len(rows) == 16 * 200
    assert len({row.url for row in rows}) == 16 * 200
    assert all(row.duration >= 0 for row in rows)


def test_concurrent_appends_respect_capacity():
    history = CallHistory(capacity=50)
    threads = [threading.Thread(target=lambda: [history.append(make_record(n)) for n in range(100)]) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)
    assert len(history.snapshot()) == 50


def test_record_json_shape():
    record = CallRecord(
        method="POST",
        url="https://api.example.test/v2/licenses/verify",
        status=404,
        duration=0.25,
        request_body="product_id=p&license_key=k",
        response_body='{"success": false}',
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )
    data = record.to_json()
    assert set(data) == {"Timestamp", "Method", "URL", "Status", "Duration", "Error", "RequestBody", "ResponseBody", "Headers"}
    assert data["Duration"] == 250_000_000
    assert data["Duration"] // 1_000_000 == record.duration_ms == 250
    assert data["Error"] == ""
    assert data["Headers"] == {"Content-Type": "application/x-www-form-urlencoded"}


def test_timestamps_follow_insertion_order_under_concurrency():
    history = CallHistory(capacity=10_000)
    threads = [threading.Thread(target=lambda i=i: [history.append(make_record(i * 1000 + n)) for n in range(100)]) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)

    stamps = [row.timestamp for row in history.snapshot()]
    assert len(stamps) == 800
    assert all(stamp is not None for stamp in stamps)
    assert all(newer >= older for newer, older in zip(stamps, stamps[1:]))


def test_explicit_timestamp_is_kept():
    when = datetime.datetime(2024, 1, 2, 3, 4, 5, tzinfo=datetime.timezone.utc)
    history = CallHistory()
    history.append(CallRecord(method="GET", url="https://api.example.test/v2/products", timestamp=when))
    [row] = history.snapshot()
    assert row.timestamp == when
    assert row.to_json()["Timestamp"] == "2024-01-02T03:04:05+00:00"
