#!/usr/bin/env python3
"""
AutoPaint entry point - checks dependencies, then starts the CLI.
"""

import os
import sys
import traceback

# Import name -> package to install
REQUIRED = {
    "requests": "requests",
    "PIL": "pillow",
    "numpy": "numpy",
    "keyboard": "keyboard",
    "playwright": "playwright",
}


def check_requirements():
    """Return the packages whose import failed"""
    missing = []
    for module, package in REQUIRED.items():
        try:
            __import__(module)
        except ImportError:
            missing.append(package)
    return missing


if __name__ == "__main__":
    missing_libs = check_requirements()
    if missing_libs:
        print("Error: some required packages are not installed:")
        for lib in missing_libs:
            print(f"- {lib}")
        print("\nInstall them with:")
        print("pip install -e .")
        print("playwright install chromium")
        sys.exit(1)

    try:
        from auto_paint import main
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nStopped by user.")
    except Exception as e:
        print("\n" + "=" * 50)
        print("An error occurred while running AutoPaint:")
        print(str(e))
        print("\nError details:")
        traceback.print_exc()
        print("=" * 50)
        print(f"- Python: {sys.version}")
        print(f"- Working directory: {os.getcwd()}")
        sys.exit(1)
