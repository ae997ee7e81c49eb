from __future__ import annotations

from typing import Any, Generic, List, Mapping, Optional, Type, TypeVar

import pydantic

from featurelab_web.domain.errors import NotLoadedError, ValidationError
from featurelab_web.domain.models import NormalizedResponse, ValidationResult
from featurelab_web.domain.records import Record
from featurelab_web.domain.schemas import ResponseSchema, describe_errors

R = TypeVar("R", bound=Record)


class ResponseNormalizer(Generic[R]):
    """
    Strategy interface: one subclass per response family.

    `schema` reports what is wrong with a response, `record_type` coerces it
    anyway. `normalize` is pure and never raises. `load` additionally keeps
    the record as this instance's currently loaded record, which every
    derived accessor reads.
    """

    record_type: Type[Record] = Record
    schema: Type[ResponseSchema] = ResponseSchema
    label: str = "Data"

    def __init__(self):
        self._record: Optional[R] = None

    def validate(self, raw: Mapping[str, Any]) -> List[str]:
        try:
            self.schema.model_validate(raw)
        except pydantic.ValidationError as e:
            return describe_errors(e)
        return []

    def coerce(self, raw: Any) -> R:
        return self.record_type.model_validate(raw)

    def normalize(self, raw: Any) -> NormalizedResponse[R]:
        if isinstance(raw, self.record_type):
            raw = raw.to_dict()
        if isinstance(raw, Mapping):
            errors = self.validate(raw)
            record = self.coerce(raw)
        else:
            errors = ["Response must be a JSON object"]
            record = self.coerce({})
        return NormalizedResponse(record=record, validation=ValidationResult.from_errors(errors))

    def load(self, raw: Any) -> NormalizedResponse[R]:
        normalized = self.normalize(raw)
        self._record = normalized.record
        return normalized

    def require(self, raw: Any) -> NormalizedResponse[R]:
        """Load only a fully valid response; otherwise raise ValidationError and keep nothing."""
        normalized = self.normalize(raw)
        if not normalized.validation.is_valid:
            raise ValidationError(normalized.validation.errors)
        self._record = normalized.record
        return normalized

    def is_loaded(self) -> bool:
        return self._record is not None

    def clear(self) -> None:
        self._record = None

    @property
    def record(self) -> R:
        if self._record is None:
            raise NotLoadedError(self.label)
        return self._record
