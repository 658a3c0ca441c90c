"""Configuration model - validation and presets for erase policies."""

from typing import Any, Dict, Mapping, Optional, Union

from pydantic import ValidationError

from .errors import ConfigError, ErrorCode
from .models import EraseConfiguration, EraseMethod, MIN_PASSES, MAX_PASSES

PASS_PRESETS = (1, 3, 7, 35)

METHOD_PRESET_PASSES = {
    EraseMethod.QUICK: 1,
    EraseMethod.SECURE: 3,
    EraseMethod.MILITARY: 7,
}

METHOD_INFO: Dict[EraseMethod, Dict[str, Any]] = {
    EraseMethod.QUICK: {
        "label": "Quick Erase (1-pass)",
        "description": "Single overwrite pass. Fastest option, suitable for basic security needs.",
        "nominal_minutes": 15,
    },
    EraseMethod.SECURE: {
        "label": "Secure Erase (3-pass)",
        "description": "Multiple overwrite passes with different patterns. Recommended for most users.",
        "nominal_minutes": 45,
    },
    EraseMethod.MILITARY: {
        "label": "Military Grade (7-pass)",
        "description": "Seven overwrite passes for regulated or classified data.",
        "nominal_minutes": 120,
    },
}

# Field names used by the configuration wizard front end
_WIZARD_KEYS = {
    "storageType": "storage_type",
    "eraseMethod": "method",
    "eraseScope": "scope",
    "overwritePasses": "passes",
    "verifyErase": "verify",
    "secureDelete": "secure_delete",
}


class ValidationResult:
    """Either a validated configuration or the error that rejected it."""

    def __init__(self, configuration: Optional[EraseConfiguration] = None,
                 error: Optional[ConfigError] = None):
        self.configuration = configuration
        self.error = error

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> EraseConfiguration:
        """Return the configuration or raise the validation error."""
        if self.error is not None:
            raise self.error
        return self.configuration

    def __repr__(self) -> str:
        if self.ok:
            return f"ValidationResult(ok, {self.configuration!r})"
        return f"ValidationResult(error={self.error.code.value}: {self.error})"


def _normalize(raw: Mapping[str, Any]) -> Dict[str, Any]:
    data = {}
    for key, value in raw.items():
        data[_WIZARD_KEYS.get(key, key)] = value
    return data


def _to_config_error(exc: ValidationError) -> ConfigError:
    """Collapse pydantic errors into a single ConfigError, pass count first."""
    errors = exc.errors()
    for err in errors:
        if err["loc"] and err["loc"][0] == "passes":
            return ConfigError(
                f"passes must be an integer between {MIN_PASSES} and {MAX_PASSES}, got {err.get('input')!r}",
                ErrorCode.INVALID_PASS_COUNT,
            )
    first = errors[0]
    field = first["loc"][0] if first["loc"] else "configuration"
    return ConfigError(f"unrecognized value {first.get('input')!r} for {field}", ErrorCode.INVALID_ENUM)


def validate(config: Union[EraseConfiguration, Mapping[str, Any]]) -> ValidationResult:
    """Validate an erase configuration. Pure; never raises."""
    if isinstance(config, EraseConfiguration):
        data = config.model_dump()
    elif isinstance(config, Mapping):
        data = _normalize(config)
    else:
        return ValidationResult(error=ConfigError(
            f"expected a mapping or EraseConfiguration, got {type(config).__name__}",
            ErrorCode.INVALID_ENUM,
        ))

    try:
        return ValidationResult(configuration=EraseConfiguration.model_validate(data))
    except ValidationError as e:
        return ValidationResult(error=_to_config_error(e))


def with_changes(config: EraseConfiguration, **changes: Any) -> ValidationResult:
    """Return a re-validated copy of config with the given fields replaced."""
    data = config.model_dump()
    data.update(changes)
    return validate(data)


def preset_passes(method: Union[EraseMethod, str]) -> int:
    """Suggested pass count for a method."""
    return METHOD_PRESET_PASSES[EraseMethod(method)]


def estimate_duration(config: EraseConfiguration) -> str:
    """Rough wall-clock estimate, scaled from the method's nominal duration."""
    info = METHOD_INFO[config.method]
    per_pass = info["nominal_minutes"] / METHOD_PRESET_PASSES[config.method]
    minutes = int(round(per_pass * config.passes))
    if minutes >= 60:
        return f"~{minutes // 60}h {minutes % 60:02d}m"
    return f"~{minutes} minutes"


def for_method(method: Union[EraseMethod, str], **overrides: Any) -> ValidationResult:
    """Build a configuration for a method using its preset pass count."""
    data: Dict[str, Any] = {"method": method}
    try:
        data["passes"] = preset_passes(method)
    except ValueError:
        pass  # validate() reports the bad method
    data.update(overrides)
    return validate(data)
