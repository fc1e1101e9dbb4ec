"""Merge the three configuration layers into one frozen InternalConfig.

Layers, lowest to highest precedence: ParamConfig (expert defaults),
UserConfig (the user's CONFIG dict) and CLIConfig (command-line flags).
``resolve_config`` is the only place the layers meet.
"""

from typing import Union, Optional
from gapcube.schemas.param import ParamConfig
from gapcube.schemas.user import UserConfig
from gapcube.schemas.cli import CLIConfig
from gapcube.schemas.internal import InternalConfig
from gapcube.schemas.ruleset import Ruleset


def deep_merge(base: dict, *overrides: dict) -> dict:
    """Return ``base`` updated by each override in turn.

    Dict values merge key by key; anything else (lists, tuples, scalars,
    ``None``) is replaced outright. Inputs are not modified.

    >>> deep_merge({"mask": {"buffer_pixels": 0, "band_specific": False}},
    ...            {"mask": {"buffer_pixels": 2}})
    {'mask': {'buffer_pixels': 2, 'band_specific': False}}
    """
    merged = dict(base)
    for layer in overrides:
        for key, value in layer.items():
            current = merged.get(key)
            if isinstance(current, dict) and isinstance(value, dict):
                merged[key] = deep_merge(current, value)
            else:
                merged[key] = value
    return merged


def _as_model(model, value):
    """Coerce a layer given as None, a dict or a model instance."""
    if isinstance(value, model):
        return value
    return model.model_validate(value or {})


def _resolve_mask_section(mask: dict) -> dict:
    """Fold run-wide masking adjustments into every ruleset.

    ``treat_as_valid``, ``buffer_pixels`` and ``band_specific`` are
    conveniences of the outer layers; the runtime only sees rulesets.
    """
    treat_as_valid = mask.pop("treat_as_valid", None) or []
    buffer_pixels = mask.pop("buffer_pixels", None)
    band_specific = mask.pop("band_specific", None)

    rulesets = {}
    for name, raw in mask.get("rulesets", {}).items():
        ruleset = Ruleset.model_validate(raw).with_valid(*treat_as_valid)
        update = {}
        if buffer_pixels is not None:
            update["buffer_pixels"] = buffer_pixels
        if band_specific is not None:
            update["band_specific"] = band_specific
        if update:
            ruleset = Ruleset.model_validate({**ruleset.model_dump(), **update})
        rulesets[name.lower()] = ruleset

    mask["rulesets"] = rulesets
    if mask.get("default_sensor") is not None and mask["default_sensor"] not in rulesets:
        raise ValueError(
            f"mask.default_sensor '{mask['default_sensor']}' has no ruleset; "
            f"known sensors: {sorted(rulesets)}"
        )
    return mask


def resolve_config(
    param_cfg: Union[dict, ParamConfig],
    user_cfg: Optional[Union[dict, UserConfig]] = None,
    cli_cfg: Optional[Union[dict, CLIConfig]] = None,
) -> InternalConfig:
    """Validate the three layers, merge them and freeze the result.

    Parameters
    ----------
    param_cfg : dict or ParamConfig
        Expert defaults; every field is populated except ``grid``.
    user_cfg : dict or UserConfig, optional
        The user's overrides, flat aliases or nested sections.
    cli_cfg : dict or CLIConfig, optional
        Command-line overrides; win over everything else.

    Returns
    -------
    InternalConfig
        The frozen configuration every stage reads.

    Raises
    ------
    ValueError
        No layer defines the grid, or ``mask.default_sensor`` names a
        sensor without a ruleset.
    pydantic.ValidationError
        A layer, or the merged result, fails validation.

    Examples
    --------
    >>> user = UserConfig(GRID=grid, SENSOR="sentinel2", TREAT_AS_VALID=["snow"])
    >>> config = resolve_config(ParamConfig(), user)
    >>> config.mask.rulesets["sentinel2"].exclude
    ['fill', 'saturated', 'cloud_shadow', 'cloud', 'cirrus']
    """
    param = _as_model(ParamConfig, param_cfg)
    user = _as_model(UserConfig, user_cfg)
    cli = _as_model(CLIConfig, cli_cfg)

    merged = deep_merge(
        param.model_dump(),
        user.to_internal_overrides(),
        cli.to_internal_overrides(),
    )
    if merged.get("grid") is None:
        raise ValueError("No grid configured: set GRID in the user config")

    merged["mask"] = _resolve_mask_section(dict(merged["mask"]))
    return InternalConfig.model_validate(merged)
