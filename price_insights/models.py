"""Data models for products, price observations and upload jobs."""
import re
from datetime import date, datetime, timezone
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

_FRACTION_RE = re.compile(r"\.(\d+)")


def _six_digit_fraction(match: re.Match) -> str:
    return "." + match.group(1)[:6].ljust(6, "0")


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 date or datetime into an aware UTC datetime."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("empty date")
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        # PostgREST emits 1-6 fraction digits; fromisoformat wants 3 or 6 before 3.11
        text = _FRACTION_RE.sub(_six_digit_fraction, text, count=1)
        parsed = datetime.fromisoformat(text)
    else:
        raise ValueError(f"unsupported date value: {value!r}")

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class Product(BaseModel):
    """A vehicle version as stored in the products table."""

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    id_base: Optional[str] = Field(default=None, description="Natural key from the upload")
    brand: Optional[str] = None
    category: Optional[str] = None
    model: Optional[str] = Field(default=None, description="Main model (modelo principal)")
    submodel: Optional[str] = None
    name: Optional[str] = None
    estado: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_text(cls, value: Any) -> Any:
        return str(value) if value is not None else None

    @property
    def group_key(self) -> str:
        """Key used to group history rows of one vehicle version."""
        return f"{self.brand}_{self.model}_{self.submodel or ''}"


class PriceObservation(BaseModel):
    """One row of price_data, optionally joined with its product."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: Optional[str] = None
    product_id: Optional[str] = None
    price: Optional[Any] = None
    precio_num: Optional[float] = None
    precio_lista_num: Optional[float] = None
    bono_num: Optional[float] = None
    ctx_precio: Optional[str] = None
    date: datetime
    store: Optional[str] = None
    precio_texto: Optional[str] = None
    fuente_texto_raw: Optional[str] = None
    modelo_url: Optional[str] = None
    archivo_origen: Optional[str] = None
    url: Optional[str] = None
    product: Optional[Product] = Field(default=None, alias="products")

    @field_validator("id", "product_id", mode="before")
    @classmethod
    def _ids_as_text(cls, value: Any) -> Any:
        return str(value) if value is not None else None

    @field_validator("date", mode="before")
    @classmethod
    def _parse_date(cls, value: Any) -> datetime:
        return parse_timestamp(value)

    @field_validator("product", mode="before")
    @classmethod
    def _unwrap_embed(cls, value: Any) -> Any:
        # PostgREST returns a list for some embed configurations
        if isinstance(value, list):
            return value[0] if value else None
        return value

    @property
    def product_key(self) -> Optional[str]:
        """Product id, falling back to the embedded product's id."""
        if self.product and self.product.id:
            return self.product.id
        return self.product_id


class UploadRecord(BaseModel):
    """One element of an uploaded pricing dataset."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id_base: str = Field(..., alias="ID_Base", min_length=1)
    categoria: str = Field(..., alias="Categoría", min_length=1)
    modelo_principal: str = Field(..., alias="Modelo Principal", min_length=1)
    modelo: str = Field(..., alias="Modelo", min_length=1)
    submodelo: Optional[str] = Field(default=None, alias="Submodelo")
    ctx_precio: Optional[str] = None
    precio_num: Optional[float] = None
    precio_lista_num: Optional[float] = None
    bono_num: Optional[float] = None
    precio_texto: Optional[str] = Field(default=None, alias="Precio_Texto")
    fuente_texto_raw: Optional[str] = None
    modelo_url: Optional[str] = Field(default=None, alias="Modelo_URL")
    archivo_origen: Optional[str] = Field(default=None, alias="Archivo_Origen")
    fecha: datetime = Field(..., alias="Fecha")
    timestamp: Optional[str] = Field(default=None, alias="Timestamp")

    @field_validator("id_base", mode="before")
    @classmethod
    def _id_base_as_text(cls, value: Any) -> Any:
        return str(value) if isinstance(value, (int, float)) else value

    @field_validator("fecha", mode="before")
    @classmethod
    def _parse_fecha(cls, value: Any) -> datetime:
        return parse_timestamp(value)

    def to_product(self) -> dict[str, Any]:
        """Row for the products table."""
        return {
            "id_base": self.id_base,
            "brand": self.categoria,
            "category": self.categoria,
            "model": self.modelo_principal,
            "name": self.modelo,
            "submodel": self.submodelo or None,
        }

    def to_price_row(self, product_id: str) -> dict[str, Any]:
        """Row for the price_data table."""
        return {
            "product_id": product_id,
            "store": self.categoria,
            "price": self.precio_num,
            "date": self.fecha.isoformat(),
            "ctx_precio": self.ctx_precio,
            "precio_num": self.precio_num,
            "precio_lista_num": self.precio_lista_num,
            "bono_num": self.bono_num,
            "precio_texto": self.precio_texto,
            "fuente_texto_raw": self.fuente_texto_raw,
            "modelo_url": self.modelo_url,
            "archivo_origen": self.archivo_origen,
            "url": self.modelo_url,
        }


class ScrapingJob(BaseModel):
    """Progress record of one upload batch."""

    model_config = ConfigDict(extra="ignore")

    id: str
    status: str = Field(default="processing", description="processing, completed, failed")
    total_products: int = 0
    completed_products: int = 0
    error_message: Optional[str] = None
    results: Optional[Any] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class UserProfile(BaseModel):
    """Dashboard user profile."""

    model_config = ConfigDict(extra="ignore")

    user_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    role: str = Field(default="user", description="user or admin")
    is_active: bool = True
    subscription_status: Optional[str] = None
    subscription_expires_at: Optional[datetime] = None


class Insight(BaseModel):
    """A generated market insight."""

    insight_type: str
    title: str
    description: str
    data: Any
    priority: int
