from __future__ import annotations
from datetime import date, datetime
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .errors import ValidationError


class CamelModel(BaseModel):
    # на входе принимаем и camelCase, и snake_case; наружу отдаём camelCase
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    def dump(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def out(cls, obj) -> dict:
        # ORM-объекты, dataclass'ы и dict'ы, в том числе вложенные
        return cls.model_validate(obj, from_attributes=True).dump()


def dump_many(model: type[CamelModel], rows) -> list[dict]:
    return [model.out(r) for r in rows]


def parse_date_arg(args: Mapping[str, Any], *names: str, required: bool = True) -> date | None:
    raw = next((args.get(n) for n in names if args.get(n)), None)
    if not raw:
        if required:
            raise ValidationError(f"{names[0]} is required", details={"field": names[0]})
        return None
    raw = str(raw).strip()
    try:
        # ровно YYYY-MM-DD: без времени, хвостов, недель и компактной формы
        if len(raw) != 10:
            raise ValueError(raw)
        return datetime.strptime(raw, "%Y-%m-%d").date()
    except ValueError:
        raise ValidationError(f"{names[0]} must be YYYY-MM-DD", details={"field": names[0], "value": raw})


def parse_int_arg(args: Mapping[str, Any], name: str, default: int, *, lo: int = 1, hi: int | None = None) -> int:
    raw = args.get(name)
    if raw in (None, ""):
        return default
    try:
        val = int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer", details={"field": name, "value": raw})
    val = max(lo, val)
    return min(hi, val) if hi is not None else val
