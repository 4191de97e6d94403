#!/usr/bin/env python3
"""Validate matchmaker configuration files.

This tool validates matchmaker.yaml using the Pydantic configuration models,
catching configuration errors before runtime. Environment overrides
(REDIS_URL, PORT, TURN_*, ...) are applied exactly as the server applies them.

Exit codes:
    0: Configuration valid
    1: Configuration validation failed
    2: Import error

Usage:
    ./scripts/validate-config.py
    ./scripts/validate-config.py --config configs/matchmaker.yaml
    ./scripts/validate-config.py --help
"""

import argparse
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from pydantic import ValidationError

try:
    from matchmaker.config import MatchmakerConfig
except ImportError as e:
    print(f"❌ Import Error: {e}")
    print("   Resolution: Ensure you're running from the project root and dependencies are installed.")
    print("   Run: pip install -e .")
    sys.exit(2)


def format_validation_errors(e: ValidationError) -> str:
    """Format Pydantic validation errors in a user-friendly way.

    Args:
        e: Pydantic ValidationError

    Returns:
        Formatted error message with resolution steps
    """
    errors = []
    for error in e.errors():
        loc = ".".join(str(x) for x in error["loc"])
        msg = error["msg"]
        errors.append(f"      Field: {loc}")
        errors.append(f"      Error: {msg}")
        errors.append(f"      Type: {error['type']}")

        if "greater than" in msg.lower() or "less than" in msg.lower():
            errors.append("      Resolution: Check valid range in configuration comments")
        elif "field required" in msg.lower():
            errors.append(f"      Resolution: Add required field '{loc}' to configuration")
        errors.append("")

    return "\n".join(errors)


def validate_matchmaker_config(path: Path, verbose: bool = False) -> bool:
    """Validate matchmaker.yaml configuration.

    Args:
        path: Path to matchmaker.yaml
        verbose: Show the effective configuration on success

    Returns:
        True if valid, False otherwise
    """
    try:
        config = MatchmakerConfig.from_yaml(path)
        print(f"✅ {path}: Valid matchmaker configuration")

        if verbose:
            ws = config.transport.websocket
            turn = "rest" if config.ice.turn_secret else (
                "static" if config.ice.turn_password else "disabled"
            )
            print("\n   Configuration loaded successfully:")
            print(f"   - WebSocket: {ws.host}:{ws.port} (max {ws.max_connections} connections)")
            print(f"   - HTTP: {'enabled' if config.http.enabled else 'disabled'} on port {config.http.port}")
            print(f"   - State backend: {config.redis.url or 'in-memory'}")
            print(f"   - Profile TTL: {config.pairing.profile_ttl_seconds or 'none'}")
            print(f"   - TURN: {turn}")
            print(f"   - Log Level: {config.log_level}")

        return True

    except FileNotFoundError:
        print(f"❌ {path}: File not found")
        print(f"   Resolution: Create matchmaker configuration file at {path}")
        return False

    except ValidationError as e:
        print(f"❌ {path}: Invalid matchmaker configuration")
        print("\n   Validation Errors:")
        print(format_validation_errors(e))
        print("   Resolution: Fix configuration errors listed above")
        return False

    except Exception as e:
        print(f"❌ {path}: YAML parse error")
        print(f"   Error: {e}")
        print("   Resolution: Check YAML syntax (indentation, quotes, colons)")
        return False


def main() -> int:
    """Main entry point for config validation tool.

    Returns:
        Exit code (0=success, 1=validation failed)
    """
    parser = argparse.ArgumentParser(description="Validate matchmaker configuration")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("configs/matchmaker.yaml"),
        help="Path to matchmaker.yaml (default: configs/matchmaker.yaml)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show configuration details on success",
    )
    args = parser.parse_args()

    return 0 if validate_matchmaker_config(args.config, verbose=args.verbose) else 1


if __name__ == "__main__":
    sys.exit(main())
