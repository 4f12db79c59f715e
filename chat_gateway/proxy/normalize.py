import json

from .logger import logger


def _schema_is_empty(schema):
    if schema is None:
        return True
    if not isinstance(schema, dict):
        return False
    if not schema:
        return True
    if schema.get("type") != "object":
        return False
    if schema.get("properties") or schema.get("required"):
        return False
    if schema.get("anyOf") or schema.get("oneOf") or schema.get("allOf"):
        return False
    if schema.get("items") or schema.get("$ref") or schema.get("enum"):
        return False
    return True


def _normalize_tool_definitions(tools):
    normalized = []
    for tool in tools or []:
        if not isinstance(tool, dict):
            normalized.append(tool)
            continue
        tool_data = dict(tool)
        function = tool_data.pop("function", None)
        if isinstance(function, dict):
            tool_data.update(function)
            tool_data["type"] = tool.get("type", "function") or "function"
        if tool_data.get("type", "function") == "function" and _schema_is_empty(tool_data.get("parameters")):
            candidate = tool_data.pop("input_schema", None) or tool_data.pop("schema", None)
            if isinstance(candidate, dict) and candidate:
                tool_data["parameters"] = candidate
        normalized.append(tool_data)
    return normalized


def _ensure_json_str(value, default=""):
    if value is None:
        return default
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, ensure_ascii=False)
    except TypeError:
        return str(value)


def _convert_chat_messages_to_responses_input(messages):
    input_items = []
    call_id_by_name = {}
    call_id_counter = 0

    def next_call_id():
        nonlocal call_id_counter
        call_id_counter += 1
        return f"call_{call_id_counter}"

    def add_function_call(call_id, name, arguments):
        input_items.append(
            {
                "type": "function_call",
                "call_id": call_id,
                "name": name,
                "arguments": _ensure_json_str(arguments or "{}", "{}"),
            }
        )
        if name:
            call_id_by_name[name] = call_id

    for msg in messages or []:
        if not isinstance(msg, dict):
            input_items.append(msg)
            continue

        role = msg.get("role")
        tool_calls = msg.get("tool_calls")
        function_call = msg.get("function_call")
        if tool_calls or function_call:
            if msg.get("content"):
                input_items.append({"role": "assistant", "content": msg["content"]})
            for call in tool_calls or []:
                if not isinstance(call, dict):
                    continue
                func = call.get("function") or {}
                add_function_call(
                    call.get("id") or call.get("call_id") or next_call_id(),
                    func.get("name") or call.get("name"),
                    func.get("arguments") or call.get("arguments"),
                )
            if isinstance(function_call, dict):
                add_function_call(next_call_id(), function_call.get("name"), function_call.get("arguments"))
            continue

        if role in {"tool", "function"}:
            call_id = msg.get("tool_call_id")
            if not call_id and msg.get("name"):
                call_id = call_id_by_name.get(msg["name"])
            output = msg.get("content")
            if output is None:
                output = ""
            input_items.append(
                {
                    "type": "function_call_output",
                    "call_id": call_id or next_call_id(),
                    "output": output if isinstance(output, str) else json.dumps(output, ensure_ascii=False),
                }
            )
            continue

        item = {"role": role, "content": msg.get("content")}
        if "name" in msg:
            item["name"] = msg["name"]
        input_items.append(item)

    return input_items


def _apply_param_rules(payload, defaults=None, overrides=None, drop=()):
    data = dict(payload or {})
    for key in drop:
        data.pop(key, None)
    for key, value in (defaults or {}).items():
        data.setdefault(key, value)
    for key, value in (overrides or {}).items():
        data[key] = value
    return data


def generate_request_body(messages, model, params, tools, settings=None):
    """Build the upstream Responses API payload for one chat request.

    Unknown entries in ``params`` are forwarded untouched; only the legacy
    chat-completions fields with a Responses equivalent are renamed.
    """
    data = dict(params or {})
    data["model"] = model
    if isinstance(messages, list):
        data["input"] = _convert_chat_messages_to_responses_input(messages)
    else:
        data["input"] = messages

    functions = data.pop("functions", None)
    if tools is None and functions:
        tools = [dict(fn, type=fn.get("type", "function")) for fn in functions if isinstance(fn, dict)]
    if tools is not None:
        data["tools"] = _normalize_tool_definitions(tools)

    function_call = data.pop("function_call", None)
    if function_call is not None and "tool_choice" not in data:
        if isinstance(function_call, str):
            data["tool_choice"] = function_call
        elif isinstance(function_call, dict) and function_call.get("name"):
            data["tool_choice"] = {"type": "function", "name": function_call["name"]}

    tool_choice = data.get("tool_choice")
    if isinstance(tool_choice, dict) and isinstance(tool_choice.get("function"), dict):
        data["tool_choice"] = {
            "type": tool_choice.get("type", "function"),
            "name": tool_choice["function"].get("name"),
        }

    if "max_tokens" in data:
        max_tokens = data.pop("max_tokens")
        data.setdefault("max_output_tokens", max_tokens)

    if "reasoning_effort" in data:
        effort = data.pop("reasoning_effort")
        reasoning = data.get("reasoning")
        if isinstance(reasoning, dict):
            data["reasoning"] = dict(reasoning, effort=reasoning.get("effort", effort))
        else:
            data["reasoning"] = {"effort": effort}

    if "n" in data:
        logger.warning("Responses API does not support n; ignoring.")
        data.pop("n")

    if settings is None:
        return data
    return _apply_param_rules(
        data,
        defaults=settings.param_defaults,
        overrides=settings.param_overrides,
        drop=settings.param_drop,
    )


def _serialize_model(obj):
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if hasattr(obj, "dict"):
        return obj.dict()
    return obj
