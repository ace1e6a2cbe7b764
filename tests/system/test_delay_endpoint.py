import asyncio
from dataclasses import replace
import random
import time

import pytest

BODY = {"event": "slow_path"}


@pytest.mark.system
def test_constant_delay_is_reported_and_slept(proxy, recorded_sleep, upstream):
    r = proxy.post("/delay", json=BODY, headers={"X-Constant-Delay-Ms": "1000"})
    assert r.status_code == 200
    assert r.json() == {
        "status": "success",
        "applied_delays": {"constant_delay_ms": 1000, "random_delay_ms": 0},
        "target_url": "http://upstream.test/post",
        "response": {"result": "mocked"},
    }
    assert recorded_sleep.calls == [1.0]
    assert upstream.call_count == 1


@pytest.mark.system
def test_no_headers_means_no_delay(proxy, recorded_sleep):
    r = proxy.post("/delay", json=BODY)
    assert r.status_code == 200
    assert r.json()["applied_delays"] == {"constant_delay_ms": 0, "random_delay_ms": 0}
    assert recorded_sleep.calls == []


@pytest.mark.system
def test_random_delay_stays_below_max(make_proxy, recorded_sleep):
    client = make_proxy(rng=random.Random(2024))
    drawn = []
    for _ in range(50):
        r = client.post("/delay", json=BODY, headers={"X-Max-Random-Delay-Ms": "2000"})
        assert r.status_code == 200
        drawn.append(r.json()["applied_delays"]["random_delay_ms"])

    assert all(0 <= d < 2000 for d in drawn)
    assert len(set(drawn)) > 1
    assert recorded_sleep.calls == [d / 1000.0 for d in drawn if d > 0]


@pytest.mark.system
def test_delay_endpoint_never_simulates_failure(make_proxy, process_config):
    client = make_proxy(process=replace(process_config, success_probability=0.0))
    r = client.post("/delay", json=BODY)
    assert r.status_code == 200


@pytest.mark.system
@pytest.mark.parametrize("header", ["X-Constant-Delay-Ms", "X-Max-Random-Delay-Ms"])
def test_negative_delay_is_400(proxy, upstream, recorded_sleep, header):
    r = proxy.post("/delay", json=BODY, headers={header: "-10"})
    assert r.status_code == 400
    assert r.json()["error"] == "Invalid header"
    assert upstream.call_count == 0
    assert recorded_sleep.calls == []


@pytest.mark.slow
def test_real_constant_delay_holds_the_response(make_proxy):
    client = make_proxy(sleep=asyncio.sleep)
    start = time.perf_counter()
    r = client.post("/delay", json=BODY, headers={"X-Constant-Delay-Ms": "1000"})
    elapsed = time.perf_counter() - start
    assert r.status_code == 200
    assert r.json()["applied_delays"]["constant_delay_ms"] == 1000
    assert elapsed >= 1.0


@pytest.mark.system
@pytest.mark.parametrize("header", ["X-Constant-Delay-Ms", "X-Max-Random-Delay-Ms"])
def test_non_ascii_digit_delay_is_400(proxy, upstream, recorded_sleep, header):
    # latin-1 superscript two, which str.isdigit() accepts
    r = proxy.post("/delay", json=BODY, headers={header: b"\xb2"})
    assert r.status_code == 400
    assert r.json()["error"] == "Invalid header"
    assert upstream.call_count == 0
    assert recorded_sleep.calls == []
