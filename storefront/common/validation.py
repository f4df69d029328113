from typing import Type, TypeVar

from pydantic import BaseModel, ValidationError as PydanticValidationError
from quart import request

from .errors import ValidationError

M = TypeVar("M", bound=BaseModel)


def _errors(exc: PydanticValidationError) -> list:
    return [
        {"field": ".".join(str(part) for part in err["loc"]), "msg": err["msg"]}
        for err in exc.errors()
    ]


def validate(schema: Type[M], data) -> M:
    try:
        return schema.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(_errors(e)) from e


async def parse_body(schema: Type[M]) -> M:
    data = await request.get_json(force=True, silent=True)
    if not isinstance(data, dict):
        raise ValidationError([{"field": "body", "msg": "A JSON object body is required"}])
    return validate(schema, data)


def parse_args(schema: Type[M]) -> M:
    return validate(schema, request.args.to_dict())
