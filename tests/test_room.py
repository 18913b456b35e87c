"""Tests for room grouping and batch status."""

import asyncio
import json

import pytest

from wizlink.errors import DuplicateLightError, LightNotFoundError, NoChangeError, TransportError
from wizlink.light import Light
from wizlink.room import Room

from conftest import reply


def _pilot(ip: str) -> dict:
    return {"method": "getPilot", "env": "pro", "result": {"state": True, "src": ip}}


def _answer_from(*reachable):
    """on_open hook: bulbs at ``reachable`` answer getPilot with their own IP."""

    def _on_open(sock):
        ip = sock.remote_addr[0]
        original_send = sock.send

        def _send(data, addr=None):
            original_send(data, addr)
            if ip in reachable and json.loads(data)["method"] == "getPilot":
                sock.inject(reply(_pilot(ip)), sock.remote_addr)

        sock.send = _send

    return _on_open


class TestMembership:
    def test_new_room_is_empty(self):
        room = Room("Kitchen")
        assert room.list() == []
        assert len(room) == 0

    def test_add_and_read(self):
        room = Room("Kitchen")
        light = Light("192.168.1.20", name="Counter")
        light_id = room.new_light(light)
        assert room.list() == [light_id]
        assert room.read(light_id) is light

    def test_duplicate_ip_rejected(self):
        room = Room("Kitchen")
        room.new_light(Light("192.168.1.20"))
        with pytest.raises(DuplicateLightError):
            room.new_light(Light("192.168.1.20", name="Again"))
        assert len(room) == 1

    def test_delete(self):
        room = Room("Kitchen")
        light_id = room.new_light(Light("192.168.1.20"))
        room.delete_light(light_id)
        assert room.read(light_id) is None

    def test_delete_unknown(self):
        room = Room("Kitchen")
        light_id = room.new_light(Light("192.168.1.20"))
        room.delete_light(light_id)
        with pytest.raises(LightNotFoundError):
            room.delete_light(light_id)

    def test_update_moves_light(self):
        room = Room("Kitchen")
        light_id = room.new_light(Light("192.168.1.20", name="Counter"))
        room.update_light(light_id, Light("192.168.1.21", name="Island"))
        moved = room.read(light_id)
        assert moved.ip == "192.168.1.21"
        assert moved.name == "Island"

    def test_update_unchanged(self):
        room = Room("Kitchen")
        light_id = room.new_light(Light("192.168.1.20", name="Counter"))
        with pytest.raises(NoChangeError):
            room.update_light(light_id, Light("192.168.1.20", name="Counter"))

    def test_update_onto_other_lights_ip(self):
        room = Room("Kitchen")
        first = room.new_light(Light("192.168.1.20"))
        room.new_light(Light("192.168.1.21"))
        with pytest.raises(DuplicateLightError):
            room.update_light(first, Light("192.168.1.21"))

    def test_update_unknown(self):
        room = Room("Kitchen")
        with pytest.raises(LightNotFoundError):
            room.update_light(object(), Light("192.168.1.20"))


class TestBatchStatus:
    def test_empty_room(self):
        assert asyncio.run(Room("Hall").get_status()) == {}

    def test_status_per_ip(self, runtime):
        runtime.on_open = _answer_from("192.168.1.20", "192.168.1.21")
        room = Room("Kitchen")
        room.new_light(Light("192.168.1.20", runtime=runtime))
        room.new_light(Light("192.168.1.21", runtime=runtime))

        statuses = asyncio.run(room.get_status())

        assert statuses == {
            "192.168.1.20": {"state": True, "src": "192.168.1.20"},
            "192.168.1.21": {"state": True, "src": "192.168.1.21"},
        }

    def test_queries_run_concurrently(self, runtime):
        runtime.on_open = _answer_from()
        room = Room("Kitchen")
        room.new_light(Light("192.168.1.20", runtime=runtime))
        room.new_light(Light("192.168.1.21", runtime=runtime))

        with pytest.raises(TransportError):
            asyncio.run(room.get_status())

        # Retries of both silent lights interleave instead of running back to back
        ips = [s.remote_addr[0] for s in runtime.sockets]
        assert ips[:2] == ["192.168.1.20", "192.168.1.21"]
        assert ips.count("192.168.1.20") == ips.count("192.168.1.21") == 4

    def test_one_unreachable_light_fails_the_batch(self, runtime):
        runtime.on_open = _answer_from("192.168.1.20")
        room = Room("Kitchen")
        room.new_light(Light("192.168.1.20", runtime=runtime))
        room.new_light(Light("192.168.1.21", runtime=runtime))

        with pytest.raises(TransportError):
            asyncio.run(room.get_status())

        # The reachable light still completed its query
        reachable = [s for s in runtime.sockets if s.remote_addr[0] == "192.168.1.20"]
        assert len(reachable) == 1
