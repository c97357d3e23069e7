import json
import threading

from app.services.device import (
    DEVICE_ID_KEY,
    JsonFileStorage,
    MemoryStorage,
    NamespacedStorage,
    SessionContext,
    is_valid_device_id,
    load_or_create_device_id,
)


class TestDeviceId:
    def test_created_once_and_reused(self):
        storage = MemoryStorage()
        first = load_or_create_device_id(storage)
        assert first
        assert load_or_create_device_id(storage) == first
        assert storage.get(DEVICE_ID_KEY) == first

    def test_existing_id_kept(self):
        storage = MemoryStorage({DEVICE_ID_KEY: "dev-42"})
        assert SessionContext.load(storage).device_id == "dev-42"

    def test_separate_storages_get_distinct_ids(self):
        assert load_or_create_device_id(MemoryStorage()) != load_or_create_device_id(MemoryStorage())


class TestJsonFileStorage:
    def test_survives_reopen(self, tmp_path):
        path = tmp_path / "state" / "device.json"
        storage = JsonFileStorage(path)
        device_id = load_or_create_device_id(storage)
        storage.close()

        reopened = JsonFileStorage(path)
        assert load_or_create_device_id(reopened) == device_id
        reopened.close()
        assert json.loads(path.read_text())[DEVICE_ID_KEY] == device_id

    def test_corrupt_file_starts_empty(self, tmp_path):
        path = tmp_path / "device.json"
        path.write_text("{not json")
        storage = JsonFileStorage(path)
        assert storage.get(DEVICE_ID_KEY) is None
        storage.set("table_number", "4")
        storage.close()
        assert json.loads(path.read_text()) == {"table_number": "4"}

    def test_writes_happen_off_the_calling_thread(self, tmp_path):
        storage = JsonFileStorage(tmp_path / "device.json")
        writers = []
        storage._flush = lambda: writers.append(threading.current_thread().name)

        storage.set("table_number", "4")
        assert storage.get("table_number") == "4"
        storage.close()

        assert len(writers) == 1
        assert writers[0].startswith("state-writer")
        assert writers[0] != threading.current_thread().name

    def test_last_write_wins(self, tmp_path):
        path = tmp_path / "device.json"
        storage = JsonFileStorage(path)
        for n in range(20):
            storage.set("table_number", str(n))
        storage.close()
        assert json.loads(path.read_text()) == {"table_number": "19"}


class TestNamespacedStorage:
    def test_keys_are_isolated(self):
        shared = MemoryStorage()
        a = NamespacedStorage(shared, "a")
        b = NamespacedStorage(shared, "b")
        a.set("table_number", "1")
        b.set("table_number", "2")
        assert a.get("table_number") == "1"
        assert b.get("table_number") == "2"
        assert shared.get("a:table_number") == "1"


class TestDeviceIdFormat:
    def test_generated_ids_are_valid(self):
        assert is_valid_device_id(load_or_create_device_id(MemoryStorage()))

    def test_rejects_malformed(self):
        for value in (None, "", "short", "x" * 65, "has space in it", "semi;colon-id", "ünïcode-device"):
            assert not is_valid_device_id(value)
