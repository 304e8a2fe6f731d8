#!/usr/bin/env python3
"""
Configuration Validation Script for the Support Core bot

Checks config.json and the environment before deployment so that bad IDs,
placeholder values and loose file permissions are caught offline.

Usage:
    python3 scripts/validate_config.py
    python3 scripts/validate_config.py --config path/to/config.json
    python3 scripts/validate_config.py --env-only  # Only check environment variables
"""

import argparse
import json
import os
import re
import sys
from pathlib import Path
from typing import List

from support_core.config import load_config

PLACEHOLDER_PATTERNS = [
    r'YOUR_\w+',
    r'your_\w+_here',
    r'REPLACE_ME',
    r'CHANGE_THIS',
]


class ConfigValidator:
    """Validates Support Core configuration files and environment variables."""

    def __init__(self, config_path: str = "config.json", env_path: str = ".env"):
        self.config_path = Path(config_path)
        self.env_path = Path(env_path)
        self.errors: List[str] = []
        self.warnings: List[str] = []
        self.info: List[str] = []

    def validate_all(self) -> bool:
        """Run all validation checks. Returns True if no errors found."""
        print("🔍 Support Core Configuration Validator")
        print("=" * 60)

        self.validate_environment()

        if self.config_path.exists():
            self.validate_config_json()
        else:
            self.errors.append(f"Config file not found: {self.config_path}")

        self.validate_file_permissions()

        return self.print_results()

    def validate_environment(self):
        """Validate environment variables."""
        print("\n📋 Checking Environment Variables...")

        if not self.env_path.exists():
            self.warnings.append(f".env file not found at {self.env_path}")
            self.info.append("Environment variables can also be set in the system environment")

        discord_token = os.getenv("DISCORD_TOKEN")
        if discord_token:
            if self._validate_discord_token(discord_token):
                self.info.append("✅ DISCORD_TOKEN is set and valid format")
            else:
                self.errors.append("DISCORD_TOKEN has invalid format")
        else:
            self.info.append("DISCORD_TOKEN not in environment (will use config.json)")

        config_override = os.getenv("CONFIG_PATH")
        if config_override:
            self.info.append(f"CONFIG_PATH overrides the config location: {config_override}")

    def validate_config_json(self):
        """Validate config.json through the bot's own loader, then look for common mistakes."""
        print(f"\n📋 Checking {self.config_path}...")

        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                raw = json.load(f)
        except json.JSONDecodeError as e:
            self.errors.append(f"Invalid JSON in {self.config_path}: {e}")
            return

        if isinstance(raw, dict):
            self._check_placeholders(raw, self.config_path.name)

        try:
            config = load_config(self.config_path)
        except (ValueError, TypeError) as e:
            self.errors.append(str(e))
            return

        if not config.guild_ids:
            self.errors.append("guild_ids list is empty")
        else:
            self.info.append(f"✅ {len(config.guild_ids)} guild(s) configured")

        if not os.getenv("DISCORD_TOKEN"):
            if not config.token:
                self.errors.append("No token in config.json and DISCORD_TOKEN is not set")
            elif not self._validate_discord_token(config.token):
                self.errors.append("Discord token in config.json has invalid format")
            else:
                self.info.append("✅ Token in config.json is valid format")

        role_ids = config.role_ids
        named_roles = {
            "admin": role_ids.admin,
            "support": role_ids.support,
            "senior_staff": role_ids.senior_staff,
            "founder": role_ids.founder,
        }
        if role_ids.staff:
            named_roles["staff"] = role_ids.staff
        seen: dict[int, str] = {}
        for name, role_id in named_roles.items():
            if role_id in seen:
                self.warnings.append(f"role_ids.{name} reuses the same ID as role_ids.{seen[role_id]}")
            else:
                seen[role_id] = name

        channels = config.logging_channels
        if channels.audit is None:
            self.info.append("ℹ️  logging_channels.audit not set (audit log records stay on the console)")
        self.info.append("✅ Ticket category and logging channels configured")

        db_parent = Path(config.database_path).parent
        if config.database_path != ":memory:" and not db_parent.exists():
            self.warnings.append(f"Directory for database_path does not exist: {db_parent}")

    def validate_file_permissions(self):
        """Check file permissions for security."""
        print("\n📋 Checking File Permissions...")

        for file_path in (self.config_path, self.env_path):
            if not file_path.exists():
                continue

            mode = os.stat(file_path).st_mode
            if mode & 0o004:
                self.warnings.append(
                    f"{file_path} is readable by others. "
                    f"Recommended: chmod 600 {file_path}"
                )
            else:
                self.info.append(f"✅ {file_path} has secure permissions")

    def _validate_discord_token(self, token: str) -> bool:
        """Validate Discord token format."""
        if not token or not isinstance(token, str):
            return False

        parts = token.split('.')
        if len(parts) != 3:
            return False

        token_part_pattern = r'^[A-Za-z0-9_-]+$'
        if not all(re.match(token_part_pattern, part) for part in parts):
            return False

        return len(parts[0]) >= 10 and len(parts[1]) >= 3 and len(parts[2]) >= 10

    def _check_placeholders(self, data: dict, filename: str, path: str = ""):
        """Recursively check for placeholder values."""
        for key, value in data.items():
            current_path = f"{path}.{key}" if path else key

            if isinstance(value, str):
                if any(re.search(pattern, value, re.IGNORECASE) for pattern in PLACEHOLDER_PATTERNS):
                    self.warnings.append(
                        f"Possible placeholder in {filename} at {current_path}: {value[:50]}"
                    )
            elif isinstance(value, dict):
                self._check_placeholders(value, filename, current_path)

    def print_results(self) -> bool:
        """Print validation results."""
        print("\n" + "=" * 60)
        print("📊 VALIDATION RESULTS")
        print("=" * 60)

        if self.errors:
            print(f"\n❌ ERRORS ({len(self.errors)}):")
            for error in self.errors:
                print(f"   • {error}")

        if self.warnings:
            print(f"\n⚠️  WARNINGS ({len(self.warnings)}):")
            for warning in self.warnings:
                print(f"   • {warning}")

        if self.info:
            print(f"\nℹ️  INFO ({len(self.info)}):")
            for info_msg in self.info:
                print(f"   • {info_msg}")

        print("\n" + "=" * 60)
        if not self.errors:
            print("✅ Configuration validation passed!")
            print("=" * 60)
            return True

        print(f"❌ Configuration validation failed with {len(self.errors)} error(s)")
        print("=" * 60)
        return False


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Validate Support Core bot configuration",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python3 scripts/validate_config.py
  python3 scripts/validate_config.py --config config.json
  python3 scripts/validate_config.py --env-only
        """
    )
    parser.add_argument(
        "--config",
        default=os.getenv("CONFIG_PATH", "config.json"),
        help="Path to config.json file (default: $CONFIG_PATH or config.json)"
    )
    parser.add_argument(
        "--env-only",
        action="store_true",
        help="Only validate environment variables"
    )

    args = parser.parse_args()

    validator = ConfigValidator(config_path=args.config)

    if args.env_only:
        validator.validate_environment()
        success = validator.print_results()
    else:
        success = validator.validate_all()

    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
