from pydantic import BaseModel
from pydantic.alias_generators import to_camel

class BaseSchema(BaseModel):
    # snake_case in Python, camelCase on the wire
    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
    }

class RequestSchema(BaseSchema):
    model_config = {"str_strip_whitespace": True, "allow_inf_nan": False}
