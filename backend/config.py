"""
Runtime configuration for the Blood Bank core.
Values come from the environment (optionally a .env file next to this module).
"""
import os
from pathlib import Path

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


MONGO_URL = os.environ.get("MONGO_URL", "mongodb://localhost:27017")
DB_NAME = os.environ.get("DB_NAME", "blood_bank")

# Donor eligibility
MIN_DONATION_INTERVAL_DAYS = int(os.environ.get("MIN_DONATION_INTERVAL_DAYS", "56"))

# Collection vitals thresholds
MIN_HEMOGLOBIN_G_DL = 12.5
MIN_WEIGHT_KG = 50.0
MAX_TEMPERATURE_C = 37.5
MIN_PULSE_BPM = 50
MAX_PULSE_BPM = 100

# Lab result hard bounds
TEST_HEMOGLOBIN_RANGE = (8.0, 20.0)

STANDARD_UNIT_VOLUME_ML = float(os.environ.get("STANDARD_UNIT_VOLUME_ML", "450"))

# Shelf life in days per component type
DEFAULT_EXPIRY_DAYS = {
    "whole_blood": 35,
    "red_cells": 42,
    "plasma": 365,
    "platelets": 5,
    "cryoprecipitate": 365,
}

EXPIRING_SOON_DAYS = int(os.environ.get("EXPIRING_SOON_DAYS", "7"))

# Upper bound on units read per inventory scan, soonest expiry first
INVENTORY_SCAN_LIMIT = int(os.environ.get("INVENTORY_SCAN_LIMIT", "10000"))

REQUIRE_QC_BEFORE_ALLOCATION = _env_bool("REQUIRE_QC_BEFORE_ALLOCATION", True)
QC_BYPASS = _env_bool("QC_BYPASS", False)

ALLOCATION_RETRY_LIMIT = int(os.environ.get("ALLOCATION_RETRY_LIMIT", "1"))

DEFERRAL_PERIOD_DAYS = {
    "1-month": 30,
    "3-months": 90,
    "6-months": 180,
    "12-months": 365,
}
