"""LLM settings persistence and public sanitization."""

import copy
import json
import logging

from misan.core.state import store

LOGGER = logging.getLogger(__name__)

LLM_SETTINGS_KEY = "llm_settings"

PROMPT_TYPES = {"local", "openai_prompt", "openai_assistant"}
RESPONSE_FORMATS = {"text", "json", "auto"}
DEFAULT_MAX_SIMULTANEOUS = 3

DEFAULT_MODEL = {
    "id": "gpt4",
    "name": "GPT-4",
    "provider": "OpenAI",
    "description": "Modèle conversationnel avancé d'OpenAI.",
    "color": "text-green-600",
    "isPremium": True,
}


def default_public_settings() -> dict:
    return {
        "models": {DEFAULT_MODEL["id"]: dict(DEFAULT_MODEL)},
        "defaultModels": [DEFAULT_MODEL["id"]],
        "maxSimultaneousModels": DEFAULT_MAX_SIMULTANEOUS,
        "globalSettings": {
            "allowModelSelection": True,
            "defaultModelId": DEFAULT_MODEL["id"],
        },
        "assistantFunctions": {},
    }


def _clean_str(value) -> str:
    return value.strip() if isinstance(value, str) else ""


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def sanitize_model(model_id: str, raw: dict):
    """Public view of one model entry; None when the model is disabled."""
    raw = raw if isinstance(raw, dict) else {}
    if not raw.get("isEnabled", True):
        return None
    return {
        "id": model_id,
        "name": _clean_str(raw.get("name")) or DEFAULT_MODEL["name"],
        "provider": _clean_str(raw.get("provider")) or DEFAULT_MODEL["provider"],
        "description": _clean_str(raw.get("description")) or DEFAULT_MODEL["description"],
        "color": _clean_str(raw.get("color")) or DEFAULT_MODEL["color"],
        "isPremium": bool(raw.get("isPremium")),
    }


def sanitize_assistant_functions(raw) -> dict:
    if not isinstance(raw, dict):
        return {}

    result = {}
    for fn_id, value in raw.items():
        if not isinstance(value, dict) or value.get("isEnabled") is False:
            continue

        prompt_raw = value.get("prompt") if isinstance(value.get("prompt"), dict) else {}
        prompt_type = prompt_raw.get("type")
        prompt = {"type": prompt_type if prompt_type in PROMPT_TYPES else "local"}
        for key in ("localPromptId", "openAiPromptId", "openAiAssistantId", "versionTag"):
            if prompt_raw.get(key):
                prompt[key] = prompt_raw[key]

        entry = {
            "id": fn_id,
            "name": _clean_str(value.get("name")) or f"Assistant {fn_id}",
            "description": value.get("description") if isinstance(value.get("description"), str) else "",
            "provider": _clean_str(value.get("provider")) or "openai",
            "modelConfigId": _clean_str(value.get("modelConfigId")) or DEFAULT_MODEL["id"],
            "prompt": prompt,
            "temperature": value.get("temperature") if _is_number(value.get("temperature")) else None,
            "topP": value.get("topP") if _is_number(value.get("topP")) else None,
            "maxTokens": value.get("maxTokens") if _is_number(value.get("maxTokens")) else None,
            "responseFormat": value.get("responseFormat")
            if value.get("responseFormat") in RESPONSE_FORMATS else "text",
            "hasOpenAiReference": bool(
                prompt_raw.get("openAiAssistantId") or prompt_raw.get("openAiPromptId")
            ),
        }

        tags = value.get("tags")
        if isinstance(tags, list):
            entry["tags"] = [t for t in tags if isinstance(t, str) and t.strip()]
        if isinstance(value.get("invitationMessage"), str):
            entry["invitationMessage"] = value["invitationMessage"]
        if isinstance(value.get("metadata"), dict):
            entry["metadata"] = value["metadata"]

        result[fn_id] = entry
    return result


def sanitize_public_settings(raw) -> dict:
    """Strip admin-only fields (API keys, retries, timeouts) from raw settings."""
    if not isinstance(raw, dict):
        return default_public_settings()

    models = {}
    raw_models = raw.get("models") if isinstance(raw.get("models"), dict) else {}
    for model_id, value in raw_models.items():
        model = sanitize_model(model_id, value)
        if model:
            models[model_id] = model

    assistant_functions = sanitize_assistant_functions(raw.get("assistantFunctions"))

    if not models:
        settings = default_public_settings()
        settings["assistantFunctions"] = assistant_functions
        return settings

    model_ids = list(models.keys())
    global_settings = raw.get("globalSettings") if isinstance(raw.get("globalSettings"), dict) else {}
    raw_defaults = raw.get("defaultModels") if isinstance(raw.get("defaultModels"), list) else []
    default_ids = [m for m in raw_defaults if isinstance(m, str) and m in models]
    fallback_id = global_settings.get("defaultModelId")
    if not isinstance(fallback_id, str) or not fallback_id:
        fallback_id = model_ids[0]
    primary_id = default_ids[0] if default_ids else fallback_id

    max_simultaneous = raw.get("maxSimultaneousModels")
    if not _is_number(max_simultaneous) or max_simultaneous <= 0:
        max_simultaneous = DEFAULT_MAX_SIMULTANEOUS

    return {
        "models": models,
        "defaultModels": default_ids or [primary_id],
        "maxSimultaneousModels": max_simultaneous,
        "globalSettings": {
            "allowModelSelection": bool(global_settings.get("allowModelSelection", True)),
            "defaultModelId": primary_id,
        },
        "assistantFunctions": assistant_functions,
    }


def load_llm_settings(store_obj=None):
    """Raw admin settings dict, or None when unset or unparseable."""
    store_ref = store_obj or store
    raw_value = store_ref.get_setting(LLM_SETTINGS_KEY)
    if not raw_value:
        return None
    try:
        parsed = json.loads(raw_value)
    except ValueError:
        LOGGER.warning("Unable to parse llm_settings, using defaults")
        return None
    return parsed if isinstance(parsed, dict) else None


def get_public_llm_settings(store_obj=None) -> dict:
    raw = load_llm_settings(store_obj)
    try:
        return sanitize_public_settings(raw)
    except (TypeError, ValueError, AttributeError) as e:
        LOGGER.warning("Unable to sanitize llm_settings, using defaults: %s", e)
        return default_public_settings()


def _mask(key: str) -> str:
    return f"{key[:10]}...{key[-4:]}" if len(key) > 14 else "***"


def get_masked_llm_settings(store_obj=None) -> dict:
    settings = copy.deepcopy(load_llm_settings(store_obj) or {})
    api_keys = settings.get("apiKeys")
    if isinstance(api_keys, dict):
        for entry in api_keys.values():
            if not isinstance(entry, dict):
                continue
            value = entry.pop("value", "") or ""
            entry["valueMasked"] = _mask(value) if value else ""
            entry["isConfigured"] = bool(value)
    return settings


def llm_settings_record(payload: dict, store_obj=None) -> dict:
    """Build the system_settings row for an admin update.

    API keys sent back without a value keep the stored secret.
    """
    current = load_llm_settings(store_obj) or {}
    merged = copy.deepcopy(payload)

    current_keys = current.get("apiKeys") if isinstance(current.get("apiKeys"), dict) else {}
    new_keys = merged.get("apiKeys")
    if isinstance(new_keys, dict):
        for name, entry in new_keys.items():
            if not isinstance(entry, dict):
                continue
            entry.pop("valueMasked", None)
            if not entry.get("value"):
                previous = current_keys.get(name) or {}
                if previous.get("value"):
                    entry["value"] = previous["value"]
            entry["isConfigured"] = bool(entry.get("value"))

    return {
        "key": LLM_SETTINGS_KEY,
        "value": json.dumps(merged, ensure_ascii=False),
        "description": "Configuration des modèles LLM",
        "category": "llm",
    }
