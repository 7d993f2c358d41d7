#!/usr/bin/env python3
"""
Test runner for the transport payroll test suite
"""

import subprocess
import sys
import os
from pathlib import Path

MARKER_GROUPS = {
    'unit': ('unit', "🧪 Running Unit Tests"),
    'workflow': ('workflow', "⚙️ Running Workflow Tests"),
    'integration': ('integration', "🔗 Running Integration Tests"),
    'security': ('security', "🔐 Running Security Tests"),
}

def build_command(test_type=None):
    """Build the pytest command for a marker group (None or 'all' runs everything)"""
    cmd = [
        sys.executable, "-m", "pytest",
        "tests/",
        "-v",
        "--tb=short",
        "--strict-markers"
    ]
    if test_type and test_type != 'all':
        marker, _ = MARKER_GROUPS[test_type]
        cmd.extend(["-m", marker])
    return cmd

def main():
    """Run the test suite"""

    # Ensure we're in the right directory
    os.chdir(Path(__file__).parent)

    print("🚀 Starting Transport Payroll Test Suite")
    print("=" * 50)

    test_type = sys.argv[1].lower() if len(sys.argv) > 1 else 'all'
    if test_type != 'all' and test_type not in MARKER_GROUPS:
        print(f"❓ Unknown test type: {test_type}")
        print(f"Available options: {', '.join(MARKER_GROUPS)}, all")
        return 1

    print(MARKER_GROUPS[test_type][1] if test_type in MARKER_GROUPS else "🎭 Running All Tests")

    # Run the tests
    try:
        result = subprocess.run(build_command(test_type), check=False)
        return result.returncode

    except KeyboardInterrupt:
        print("\n⏹️ Tests interrupted by user")
        return 130

if __name__ == "__main__":
    sys.exit(main())
