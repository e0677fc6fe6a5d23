"""
Installation verification script.

Run this after installation to verify all components are importable.
"""

import sys
import importlib
from pathlib import Path


def check_python_version():
    """Check Python version."""
    print("Checking Python version...")
    version = sys.version_info
    if version.major >= 3 and version.minor >= 10:
        print(f"  ✅ Python {version.major}.{version.minor}.{version.micro}")
        return True
    else:
        print(f"  ❌ Python {version.major}.{version.minor}.{version.micro} (need 3.10+)")
        return False


def check_imports():
    """Check required package imports."""
    print("\nChecking required packages...")

    packages = [
        ("numpy", "numpy"),
        ("sounddevice", "sounddevice"),
        ("soxr", "soxr"),
        ("pydantic", "pydantic"),
        ("dotenv", "python-dotenv"),
        ("yaml", "PyYAML"),
    ]

    optional = [
        ("azure.cognitiveservices.speech", "azure-cognitiveservices-speech"),
    ]

    all_ok = True

    for module, name in packages:
        try:
            importlib.import_module(module)
            print(f"  ✅ {name}")
        except (ImportError, OSError):
            print(f"  ❌ {name} - run: pip install {name}")
            all_ok = False

    print("\nChecking optional packages (may fail on CI)...")
    for module, name in optional:
        try:
            importlib.import_module(module)
            print(f"  ✅ {name}")
        except ImportError:
            print(f"  ⚠️  {name} - optional, no remote session without it")

    return all_ok


def check_package_structure():
    """Check live_translator module structure."""
    print("\nChecking live_translator package...")

    try:
        from live_translator import __version__
        print(f"  ✅ live_translator package (version {__version__})")

        modules = [
            "live_translator.config",
            "live_translator.errors",
            "live_translator.codec",
            "live_translator.resample",
            "live_translator.playback",
            "live_translator.transcript",
            "live_translator.transport",
            "live_translator.azure_speech",
            "live_translator.session",
            "live_translator.audio_devices",
            "live_translator.utils",
            "live_translator.cli",
        ]

        for module in modules:
            importlib.import_module(module)
            print(f"  ✅ {module}")

        return True

    except Exception as e:
        print(f"  ❌ Error loading live_translator: {e}")
        return False


def check_config_files():
    """Check configuration files exist."""
    print("\nChecking configuration files...")

    files = {
        "pyproject.toml": "required",
        ".env.example": "required",
        ".env": "optional (create from .env.example)",
    }

    all_ok = True

    for filename, status in files.items():
        path = Path(filename)
        if path.exists():
            print(f"  ✅ {filename}")
        else:
            if "optional" in status:
                print(f"  ⚠️  {filename} - {status}")
            else:
                print(f"  ❌ {filename} - {status}")
                all_ok = False

    return all_ok


def main():
    """Run all checks."""
    print("=" * 60)
    print("Live Translator - Installation Verification")
    print("=" * 60)

    checks = [
        check_python_version(),
        check_imports(),
        check_package_structure(),
        check_config_files(),
    ]

    print("\n" + "=" * 60)
    if all(checks):
        print("✅ All checks passed! Installation verified.")
        print("\nNext steps:")
        print("  1. Copy .env.example to .env")
        print("  2. Add your Azure credentials to .env")
        print("  3. Run: python -m live_translator.cli self-test")
        print("=" * 60)
        return 0
    else:
        print("❌ Some checks failed. Please fix the issues above.")
        print("=" * 60)
        return 1


if __name__ == '__main__':
    sys.exit(main())
