import re
from unittest import mock

from profship.session_id import (
    SessionID,
    SessionIDGenerator,
    new_session_id,
    session_id_host_seed,
    session_id_rand_seed,
)


def test_session_id_string_is_little_endian_hex():
    assert str(SessionID(1)) == "0100000000000000"
    assert str(SessionID(0x0807060504030201)) == "0102030405060708"


def test_generator_is_deterministic_for_seed():
    a = SessionIDGenerator(seed=42)
    b = SessionIDGenerator(seed=42)
    assert [a.new_session_id() for _ in range(5)] == [b.new_session_id() for _ in range(5)]


def test_generator_ids_are_distinct():
    gen = SessionIDGenerator(seed=7)
    ids = {gen.new_session_id() for _ in range(100)}
    assert len(ids) == 100


def test_new_session_id_format():
    sid = new_session_id()
    assert re.fullmatch(r"[0-9a-f]{16}", str(sid))
    assert 0 <= sid.value < 1 << 64


def test_host_seed_is_fnv_of_hostname():
    with mock.patch("socket.gethostname", return_value=""):
        assert session_id_host_seed() == 0xCBF29CE484222325 - (1 << 64)


def test_host_seed_is_stable_and_depends_on_name():
    with mock.patch("socket.gethostname", return_value="alpha"):
        first = session_id_host_seed()
        second = session_id_host_seed()
    with mock.patch("socket.gethostname", return_value="beta"):
        other = session_id_host_seed()
    assert first == second
    assert first != other


def test_host_seed_unavailable():
    with mock.patch("socket.gethostname", side_effect=OSError("no host")):
        assert session_id_host_seed() is None


def test_rand_seed_in_int64_range():
    seeds = [session_id_rand_seed() for _ in range(20)]
    assert all(-(1 << 63) <= s < (1 << 63) for s in seeds)
    assert len(set(seeds)) > 1