"""Shared fixtures: products and price observations around a fixed clock."""
from datetime import datetime, timedelta, timezone
import pytest

from price_insights.models import PriceObservation

NOW = datetime(2025, 6, 30, 12, 0, tzinfo=timezone.utc)


def product(pid, brand="Toyota", category="SUV", model="RAV4", submodel=None, name=None):
    return {
        "id": pid,
        "id_base": f"base-{pid}",
        "brand": brand,
        "category": category,
        "model": model,
        "submodel": submodel,
        "name": name or f"{brand} {model}",
    }


def observation(prod, price, days_ago=0, ctx_precio="contado", **extra):
    return PriceObservation.model_validate({
        "id": f"{prod['id']}-{days_ago}-{price}",
        "product_id": prod["id"],
        "price": price,
        "precio_num": price,
        "ctx_precio": ctx_precio,
        "date": (NOW - timedelta(days=days_ago)).isoformat(),
        "products": prod,
        **extra,
    })


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_product():
    return product


@pytest.fixture
def make_obs():
    return observation


@pytest.fixture
def market():
    """Four products over a few scraping sessions.

    Latest snapshot: RAV4 30M, Corolla 20M, Sportage 25M, Rio 10M.
    """
    rav4 = product("p-rav4", "Toyota", "SUV", "RAV4")
    corolla = product("p-corolla", "Toyota", "Sedan", "Corolla")
    sportage = product("p-sportage", "Kia", "SUV", "Sportage")
    rio = product("p-rio", "Kia", "Sedan", "Rio")
    return [
        observation(rav4, 30_000_000, days_ago=0),
        observation(rav4, 28_000_000, days_ago=10),
        observation(corolla, 20_000_000, days_ago=0),
        observation(sportage, 25_000_000, days_ago=0),
        observation(sportage, 20_000_000, days_ago=20),
        observation(rio, 10_000_000, days_ago=1, ctx_precio="credito"),
    ]


@pytest.fixture
def upload_rows():
    """Rows in the upload JSON schema."""
    def row(id_base, modelo="Corolla 1.8 GLI", fecha="2025-06-01", precio=15_990_000, **overrides):
        data = {
            "ID_Base": id_base,
            "Categoría": "Toyota",
            "Modelo Principal": "Corolla",
            "Modelo": modelo,
            "Submodelo": "GLI",
            "ctx_precio": "contado",
            "precio_num": precio,
            "precio_lista_num": precio + 1_000_000,
            "bono_num": 1_000_000,
            "Precio_Texto": f"${precio:,}",
            "fuente_texto_raw": "Precio contado",
            "Modelo_URL": f"https://example.com/{id_base}",
            "Archivo_Origen": "toyota.json",
            "Fecha": fecha,
            "Timestamp": f"{fecha}T10:00:00",
        }
        data.update(overrides)
        return data
    return row
