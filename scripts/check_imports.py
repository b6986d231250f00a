#!/usr/bin/env python3
"""
Import smoke test - checks that all modules can be imported without errors.

Catches missing optional crypto backends and import cycles between the
validators and resolvers before the test suite runs.
"""

import sys
from pathlib import Path

# Add src to path
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

MODULES_TO_TEST = [
    "sender_auth",
    "sender_auth.cli",
    "sender_auth.config",
    "sender_auth.authenticator",
    "sender_auth.resolvers.cache",
    "sender_auth.resolvers.dnspython_resolver",
    "sender_auth.resolvers.memory",
    "sender_auth.validators.spf",
    "sender_auth.validators.macros",
    "sender_auth.validators.dkim",
    "sender_auth.validators.canonicalization",
    "sender_auth.validators.headers",
    "sender_auth.renderers.cli_renderer",
    "sender_auth.renderers.json_renderer",
]


def main():
    """Test importing all modules."""
    failed = []

    for module_name in MODULES_TO_TEST:
        try:
            __import__(module_name)
            print(f"✓ {module_name}")
        except Exception as e:
            print(f"✗ {module_name}: {e}")
            failed.append((module_name, e))

    if failed:
        print(f"\n{len(failed)} module(s) failed to import:")
        for module_name, error in failed:
            print(f"  - {module_name}: {error}")
        sys.exit(1)

    print(f"\nAll {len(MODULES_TO_TEST)} modules imported successfully")
    sys.exit(0)


if __name__ == "__main__":
    main()
