"""Импорт цен из Excel и шаблон файла для загрузки."""

import io
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional
from zipfile import BadZipFile

import pandas as pd
from openpyxl.utils.exceptions import InvalidFileException
from pydantic import ValidationError

from base.exceptions import InvalidParameterError
from catalog.domain.models import PriceUpsert

PRICES_SHEET = "Prices"
REQUIRED_COLUMNS = ["country_id", "application_id", "cost"]
OPTIONAL_COLUMNS = ["currency", "count", "discount", "is_active"]


def _cell(row: pd.Series, column: str, default=None):
    value = row.get(column, default)
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return default
    return value


def _to_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "y")
    return bool(value)


def _optional_bool(value) -> Optional[bool]:
    return None if value is None else _to_bool(value)


def read_price_rows(content: bytes) -> tuple[list[PriceUpsert], list[str]]:
    """Разбор листа Prices; строки с ошибками попадают в список ошибок."""
    try:
        df = pd.read_excel(io.BytesIO(content), sheet_name=PRICES_SHEET)
    except (ValueError, KeyError, OSError, BadZipFile, InvalidFileException) as e:
        raise InvalidParameterError(f"Cannot read sheet '{PRICES_SHEET}': {e}") from e

    missing_columns = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing_columns:
        raise InvalidParameterError(f"Missing required columns: {missing_columns}")

    rows: list[PriceUpsert] = []
    errors: list[str] = []
    for index, row in df.iterrows():
        try:
            rows.append(
                PriceUpsert(
                    country_id=int(row["country_id"]),
                    application_id=int(row["application_id"]),
                    cost=Decimal(str(row["cost"])),
                    currency=str(_cell(row, "currency", "USD")).strip(),
                    count=int(_cell(row, "count", 0)),
                    discount=Decimal(str(_cell(row, "discount", 0))),
                    is_active=_optional_bool(_cell(row, "is_active")),
                )
            )
        except (ValueError, TypeError, InvalidOperation, ValidationError) as e:
            errors.append(f"Row {index + 2}: {e}")
    return rows, errors


def build_price_template() -> bytes:
    """Excel шаблон для загрузки цен с листом инструкций."""
    template = pd.DataFrame(
        {
            "country_id": [1, 1],
            "application_id": [1, 2],
            "cost": [0.30, 0.15],
            "currency": ["USD", "USD"],
            "count": [1500, 800],
            "discount": [0, 10],
            "is_active": [True, True],
        }
    )
    instructions = pd.DataFrame(
        {
            "Поле": REQUIRED_COLUMNS + OPTIONAL_COLUMNS,
            "Описание": [
                "ID страны (обязательно)",
                "ID приложения (обязательно)",
                "Цена номера, не меньше 0 (обязательно)",
                "Валюта, 3 буквы (по умолчанию USD)",
                "Оценка количества доступных номеров",
                "Общая скидка в процентах, 0-100",
                "Активна ли цена (пусто: без изменений, для новой цены true)",
            ],
        }
    )

    output = io.BytesIO()
    with pd.ExcelWriter(output, engine="openpyxl") as writer:
        template.to_excel(writer, sheet_name=PRICES_SHEET, index=False)
        instructions.to_excel(writer, sheet_name="Instructions", index=False)
        workbook = writer.book
        workbook.properties.created = datetime.now(timezone.utc).replace(tzinfo=None)
        workbook.active = 0
    return output.getvalue()
