"""Pytest fixtures for nant-mcp tests."""

import pytest
import sys
import os

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))


@pytest.fixture
def nant_home(tmp_path):
    """NAnt installation directory with executables for both platforms."""
    home = tmp_path / "nant-0.92"
    (home / "bin").mkdir(parents=True)
    (home / "bin" / "NAnt.exe").touch()
    (home / "bin" / "nant").touch()
    return home


@pytest.fixture
def sample_nant_output():
    """Console output of a failed NAnt build."""
    return """NAnt 0.92 (Build 0.92.4543.0; release; 6/9/2012)
Copyright (C) 2001-2012 Gerry Shaw
http://nant.sourceforge.net

Buildfile: file:///C:/src/app/default.build
Target framework: Microsoft .NET Framework 4.0
Target(s) specified: compile

compile:

      [csc] Compiling 3 files to 'C:\\src\\app\\build\\App.dll'.
      [csc] c:\\src\\app\\Program.cs(12,13): error CS0103: The name 'x' does not exist in the current context
      [csc] c:\\src\\app\\Util.cs(4,9): warning CS0168: The variable 'e' is declared but never used

BUILD FAILED

External Program Failed: C:\\Windows\\Microsoft.NET\\Framework\\v4.0.30319\\csc.exe (return code was 1)

Total time: 0.8 seconds.
"""
