# utils/xml_loader.py
import xml.etree.ElementTree as ET
from typing import Any, Dict
from pathlib import Path

# Sections whose tags are prefixed with the section name (spouse/age -> spouse_age)
PREFIXED_SECTIONS = ("spouse", "simulation")


def parse_profile_xml(file_path: Any) -> Dict[str, Any]:
    """
    Flatten a profile XML (path or file-like object) into a dict of field values.

    Household, asset, income, expense and strategy tags map straight onto
    SimulationParameters fields. Empty tags become None.
    """
    tree = ET.parse(file_path)
    root = tree.getroot()

    profile_dict: Dict[str, Any] = {}

    for child in root:
        if len(child) == 0:
            profile_dict[child.tag] = try_cast(child.text)
            continue
        for sub in child:
            val = try_cast(sub.text)
            if sub.tag in ["gender", "health_status", "filing_status"] and isinstance(val, str):
                val = val.strip().lower()
            if sub.tag == "state" and isinstance(val, str):
                val = val.strip().upper()
            key = f"{child.tag}_{sub.tag}" if child.tag in PREFIXED_SECTIONS else sub.tag
            profile_dict[key] = val

    return profile_dict


def try_cast(value: str) -> Any:
    """Try to convert string to int or float if possible, else leave as str."""
    if value is None:
        return None
    value = value.strip()
    if value == "":
        return None
    # Booleans
    if value.lower() in ("true", "false"):
        return value.lower() == "true"

    # Integers (try first)
    try:
        if '.' not in value:
            return int(value)
    except ValueError:
        pass

    # Floats (try second)
    try:
        return float(value)
    except ValueError:
        pass

    return value  # Return as string if all else fails


CONFIG_DIR = Path(__file__).parent.parent / "config"

DEFAULT_PROFILE = parse_profile_xml(CONFIG_DIR / "default_profile.xml")
