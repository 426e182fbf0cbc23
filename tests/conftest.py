import pytest

import db
from models import InventoryItem


@pytest.fixture
def catalog():
    items = [
        InventoryItem("CLT-PLT", "Clutch plate", 3000, 4200.0, 10),
        InventoryItem("ALT-12V", "Alternator 12V", 8000, 18500.0, 5),
        InventoryItem("ECU-MOD", "Engine control module", 2000, 30000.0, 3),
        InventoryItem("AIR-FLT", "Air filter", 400, 350.0, 100),
        InventoryItem("HVY-AXL", "Rear axle", 12000, 52000.0, 2),
        InventoryItem("BRK-KIT", "Brake caliper kit", 500, 5000.0, 20),
    ]
    return {item.code: item for item in items}


@pytest.fixture
def conn(tmp_path, monkeypatch):
    monkeypatch.setattr(db, "DB_PATH", tmp_path / "boxplan.db")
    connection = db.get_conn()
    db.run_migrations(connection)
    yield connection
    connection.close()
