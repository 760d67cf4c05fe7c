#!/usr/bin/env python3
"""Configuration validation script."""

import os
import sys
from pathlib import Path
from typing import List

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from savings_app.config.loader import ConfigLoader
from savings_app.config.validation import ConfigValidator, ValidationError


SAMPLE_PLANS = {
    "weekly-emergency-fund": {
        "owner_ref": "owner-1",
        "token_ref": "0xtoken",
        "initial_amount": "100",
        "periodic_amount": "10",
        "reason": "Emergency fund",
        "lock_type": 0,
        "duration": 2592000,
        "interval": "WEEKLY",
    },
    "hourly-should-fail": {
        "owner_ref": "owner-1",
        "token_ref": "0xtoken",
        "initial_amount": "100",
        "periodic_amount": "0",
        "reason": "Invalid on purpose",
        "lock_type": 3,
        "duration": 3600,
        "interval": "HOURLY",
    },
}


def print_errors(errors: List[ValidationError]) -> None:
    for error in errors:
        print(f"  • {error.field}: {error.message} (value: {error.value})")


def main():
    """Main validation function."""
    print("🔍 Validating periodic savings configuration...")

    loader = ConfigLoader.create()
    config = loader.merge_config()
    errors = ConfigValidator.validate_config(config)

    all_valid = True
    if errors:
        print(f"❌ Found {len(errors)} validation errors in {loader.config_dir}:")
        print_errors(errors)
        all_valid = False
    else:
        print(f"✅ Engine settings in {loader.config_dir} are valid")

    secret_var = config["custody"]["secret_env_var"]
    if not os.environ.get(secret_var):
        print(f"⚠️  {secret_var} is not set; the engine will refuse to start")

    print("\n📋 Validating sample plan settings...")
    for name, settings in SAMPLE_PLANS.items():
        plan_errors = ConfigValidator.validate_plan_config(settings)
        expected_invalid = name.endswith("should-fail")

        if plan_errors and expected_invalid:
            print(f"✅ {name} rejected as expected ({len(plan_errors)} errors)")
        elif plan_errors:
            print(f"❌ {name} rejected:")
            print_errors(plan_errors)
            all_valid = False
        elif expected_invalid:
            print(f"❌ {name} was accepted")
            all_valid = False
        else:
            print(f"✅ {name} is valid")

    if all_valid:
        print("\n🎉 All configuration validation passed!")
        sys.exit(0)
    else:
        print("\n❌ Configuration validation failed!")
        sys.exit(1)


if __name__ == "__main__":
    main()
