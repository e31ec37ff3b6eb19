import redis

from redis_client import RedisClient


class CountingRedis:
    def __init__(self):
        self.values = {}
        self.expiries = {}

    def ping(self):
        return True

    def incr(self, key):
        self.values[key] = self.values.get(key, 0) + 1
        return self.values[key]

    def expire(self, key, seconds):
        self.expiries[key] = seconds

    def keys(self, pattern):
        return [k for k in self.values if k.startswith(pattern.rstrip("*"))]


class BrokenRedis(CountingRedis):
    def incr(self, key):
        raise redis.ConnectionError("connection reset")


def test_rate_limit_counts_within_window():
    fake = CountingRedis()
    client = RedisClient(client=fake)

    assert client.check_rate_limit("rate_limit:orders:1.2.3.4", 2, 60) == (True, 1)
    assert client.check_rate_limit("rate_limit:orders:1.2.3.4", 2, 60) == (True, 0)
    assert client.check_rate_limit("rate_limit:orders:1.2.3.4", 2, 60) == (False, 0)
    # window is opened once, on the first hit
    assert fake.expiries == {"rate_limit:orders:1.2.3.4": 60}


def test_rate_limit_fails_open_without_redis():
    client = RedisClient(enabled=False)

    assert client.is_available() is False
    assert client.check_rate_limit("rate_limit:x", 5, 60) == (True, 5)
    assert client.get_info() == {"status": "unavailable"}


def test_rate_limit_fails_open_on_redis_error():
    client = RedisClient(client=BrokenRedis())
    assert client.check_rate_limit("rate_limit:x", 5, 60) == (True, 5)


def test_info_counts_rate_limit_keys():
    fake = CountingRedis()
    client = RedisClient(client=fake)
    client.check_rate_limit("rate_limit:orders:a", 5, 60)
    client.check_rate_limit("rate_limit:reservations:a", 5, 60)

    assert client.get_info() == {"status": "available", "rate_limit_keys": 2}
