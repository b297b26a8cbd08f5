"""Oracle protocol and schema-checked invocation."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol, TypeVar

from pydantic import BaseModel, ValidationError

from tiangong_lca_upstream.core.exceptions import MisconfigurationError, OracleError, SchemaMismatchError
from tiangong_lca_upstream.core.json_utils import parse_json_response
from tiangong_lca_upstream.core.logging import get_logger

LOGGER = get_logger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)


@dataclass(slots=True, frozen=True)
class OracleRequest:
    name: str
    task: str
    context: Mapping[str, Any] = field(default_factory=dict)
    temperature: float | None = None

    def render_context(self) -> str:
        return json.dumps(self.context, ensure_ascii=False, default=str)


class Oracle(Protocol):
    """Stateless, possibly non-deterministic reasoning service."""

    async def invoke(self, request: OracleRequest, output_schema: type[BaseModel]) -> Any: ...


async def consult(oracle: Oracle, request: OracleRequest, schema: type[SchemaT]) -> SchemaT:
    """Invoke the oracle and validate its result against ``schema``.

    Accepts a schema instance, a mapping, or JSON text from the oracle. Validation problems
    raise ``SchemaMismatchError``; any other failure is wrapped in ``OracleError``.
    """
    try:
        raw = await oracle.invoke(request, schema)
    except (OracleError, MisconfigurationError):
        raise
    except Exception as exc:  # pylint: disable=broad-except
        raise OracleError(f"{request.name} invocation failed: {exc}") from exc

    if isinstance(raw, schema):
        return raw
    if isinstance(raw, BaseModel):
        raw = raw.model_dump()
    if isinstance(raw, str):
        try:
            raw = parse_json_response(raw)
        except OracleError as exc:
            raise SchemaMismatchError(request.name, [str(exc)]) from exc
    if not isinstance(raw, Mapping):
        raise SchemaMismatchError(request.name, [f"expected an object, got {type(raw).__name__}"])
    try:
        return schema.model_validate(dict(raw))
    except ValidationError as exc:
        issues = [f"{'.'.join(str(part) for part in error['loc']) or '<root>'}: {error['msg']}" for error in exc.errors()]
        LOGGER.warning("oracle.schema_mismatch", request=request.name, issues=issues)
        raise SchemaMismatchError(request.name, issues) from exc
