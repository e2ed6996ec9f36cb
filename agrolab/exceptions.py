# agrolab/exceptions.py

from rest_framework import status
from rest_framework.exceptions import APIException, NotFound, ValidationError


class UnorderedParameterError(ValidationError):
    """A submitted parameter is not part of the sample's ordered test."""

    def __init__(self, parameter_id):
        self.parameter_id = parameter_id
        super().__init__(
            {"parameter_id": [f"Parameter {parameter_id} was not ordered for this sample."]}
        )


class InvalidValueError(ValidationError):
    def __init__(self, parameter_id, raw_value, parameter_name=None):
        self.parameter_id = parameter_id
        self.parameter_name = parameter_name
        self.raw_value = raw_value
        label = f"{parameter_name} ({parameter_id})" if parameter_name else str(parameter_id)
        super().__init__(
            {"value": [f"Invalid value {raw_value!r} for test parameter {label}: not a finite number."]}
        )


class NotFoundError(NotFound):
    pass


class SampleLockedError(ValidationError):
    """The sample has reached a terminal state and accepts no more results."""

    def __init__(self, sample_code, state):
        self.state = state
        super().__init__(
            {"status": [f"Sample {sample_code} is in terminal state '{state}' and cannot be modified."]}
        )


class ConsistencyViolation(APIException):
    """
    A uniqueness constraint rejected a write because another transaction got
    there first. Recovered inside report upsert; surfaces only when the
    competing row cannot be found.
    """

    status_code = status.HTTP_409_CONFLICT
    default_detail = "Concurrent update conflict."
    default_code = "consistency_violation"
