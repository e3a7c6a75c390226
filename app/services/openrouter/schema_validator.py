import json
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import (
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    TypeAdapter,
    create_model,
)
from pydantic import ValidationError as PydanticValidationError

from app.services.openrouter.errors import OpenRouterSchemaError, OpenRouterValidationError

JsonSchema = Mapping[str, Any]

VALID_SCHEMA_TYPES = ("object", "array", "string", "number", "integer", "boolean", "null")
RESPONSE_FORMAT_TYPES = ("text", "json_object", "json_schema")


class SchemaValidator:
    """response_format 声明校验，以及按 JSON Schema 子集校验返回数据"""

    @classmethod
    def validate_response_format(cls, response_format: Mapping[str, Any]) -> None:
        format_type = response_format.get("type")
        if not format_type:
            raise OpenRouterValidationError("response_format 必须包含 type")
        if format_type not in RESPONSE_FORMAT_TYPES:
            raise OpenRouterValidationError(
                f"不支持的 response_format 类型: {format_type}",
                {"validTypes": list(RESPONSE_FORMAT_TYPES)},
            )

        if format_type == "json_schema":
            json_schema = response_format.get("json_schema")
            if not isinstance(json_schema, Mapping):
                raise OpenRouterValidationError("json_schema 类型的 response_format 需要 json_schema 字段")

            name = json_schema.get("name")
            if not name or not isinstance(name, str):
                raise OpenRouterValidationError("json_schema 必须包含 name")

            schema = json_schema.get("schema")
            if not schema:
                raise OpenRouterValidationError("json_schema 必须包含 schema")

            cls.validate_json_schema(schema)

    @classmethod
    def validate_json_schema(cls, schema: JsonSchema) -> None:
        schema_type = schema.get("type")
        if not schema_type:
            raise OpenRouterValidationError("JSON schema 必须包含 type")
        if schema_type not in VALID_SCHEMA_TYPES:
            raise OpenRouterValidationError(
                f"无效的 JSON schema 类型: {schema_type}",
                {"validTypes": list(VALID_SCHEMA_TYPES)},
            )

        if schema_type == "object":
            properties = schema.get("properties")
            if properties is None or not isinstance(properties, Mapping):
                raise OpenRouterValidationError("object 类型的 schema 必须包含 properties")

            for required_field in schema.get("required") or []:
                if required_field not in properties:
                    raise OpenRouterValidationError(
                        f"required 字段 '{required_field}' 未在 properties 中声明",
                        {"requiredField": required_field, "properties": list(properties)},
                    )

        if schema_type == "array" and not schema.get("items"):
            raise OpenRouterValidationError("array 类型的 schema 必须包含 items")

    @classmethod
    def validate_data_against_schema(cls, data: Any, schema: JsonSchema) -> None:
        adapter = TypeAdapter(cls._schema_to_type(schema, "ResponseRoot"))
        try:
            adapter.validate_python(data)
        except PydanticValidationError as e:
            raise OpenRouterSchemaError(
                "返回数据不符合预期的结构",
                {"errors": e.errors(include_url=False), "data": data},
            ) from e

    @classmethod
    def _schema_to_type(cls, schema: JsonSchema, model_name: str) -> Any:
        """把声明式 schema 翻译成 pydantic 可校验的类型"""
        schema_type = schema.get("type")

        if schema_type == "string":
            return StrictStr
        if schema_type == "number":
            return Union[StrictInt, StrictFloat]
        if schema_type == "integer":
            return StrictInt
        if schema_type == "boolean":
            return StrictBool
        if schema_type == "null":
            return type(None)

        if schema_type == "array":
            items = schema.get("items")
            if not items:
                return List[Any]
            return List[cls._schema_to_type(items, f"{model_name}Item")]

        if schema_type == "object":
            properties = schema.get("properties")
            if properties is None:
                return Dict[str, Any]

            required = set(schema.get("required") or [])
            fields = {}
            # 属性名可能不是合法标识符，用别名映射
            for index, (key, prop_schema) in enumerate(properties.items()):
                annotation = cls._schema_to_type(prop_schema, f"{model_name}_{index}")
                if key in required:
                    fields[f"field_{index}"] = (annotation, Field(..., alias=key))
                else:
                    fields[f"field_{index}"] = (annotation, Field(default=None, alias=key))

            extra = "forbid" if schema.get("additionalProperties") is False else "ignore"
            return create_model(model_name, __config__=ConfigDict(extra=extra), **fields)

        return Any

    @classmethod
    def validate_json_response(cls, content: str, schema: Optional[JsonSchema] = None) -> Any:
        """解析JSON文本，提供 schema 时再做结构校验，返回解析结果"""
        try:
            parsed = json.loads(content)
        except (TypeError, ValueError) as e:
            raise OpenRouterSchemaError(
                "返回内容不是合法的JSON",
                {"content": str(content)[:500], "error": str(e)},
            ) from e

        if schema:
            cls.validate_data_against_schema(parsed, schema)

        return parsed
