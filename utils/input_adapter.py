from models import SimulationParameters
from utils.xml_loader import DEFAULT_PROFILE, parse_profile_xml
from dataclasses import fields
from typing import Dict, Any, Optional, Tuple


def get_simulation_parameters(
    profile: Optional[Any] = None,  # XML path / file-like object, or an already-parsed dict
    **overrides: Any                # Caller overrides, e.g. from the command line
) -> SimulationParameters:
    """
    Builds validated SimulationParameters by merging the XML defaults, an
    optional profile and any overrides, using reflection (dataclasses.fields)
    so that only real fields are passed.
    """

    # 1. Start with defaults loaded from the XML profile shipped in config/
    inputs_dict = DEFAULT_PROFILE.copy()

    # 2. Merge the caller's profile on top
    if profile is not None:
        loaded = profile if isinstance(profile, dict) else parse_profile_xml(profile)
        inputs_dict.update({k: v for k, v in loaded.items() if v is not None or k.startswith("spouse_")})

    # 3. Overrides win; None values from an argument parser mean "not given"
    inputs_dict.update({k: v for k, v in overrides.items() if v is not None})

    # 4. A profile without a spouse age is a single filer
    if inputs_dict.get("spouse_age") is None:
        inputs_dict["spouse_life_expectancy"] = None

    # 5. Keep only keys that match SimulationParameters fields
    param_field_names = {f.name for f in fields(SimulationParameters)}
    final_inputs = {
        key: value
        for key, value in inputs_dict.items()
        if key in param_field_names and value is not None
    }

    # 6. Create and validate the SimulationParameters object
    return SimulationParameters(**final_inputs).validate()


def get_run_settings(profile: Optional[Any] = None) -> Tuple[int, int]:
    """(iterations, seed) from the <simulation> section."""
    settings: Dict[str, Any] = DEFAULT_PROFILE.copy()
    if profile is not None:
        loaded = profile if isinstance(profile, dict) else parse_profile_xml(profile)
        settings.update({k: v for k, v in loaded.items() if v is not None})
    return int(settings.get("simulation_iterations", 1000)), int(settings.get("simulation_seed", 12345))
