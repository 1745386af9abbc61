#!/usr/bin/env python3
"""
System Command Helpers
Runs external network tools with timeouts and uniform result dictionaries.

Package Requirements:
- Python 3.8+
- Standard system tools: ip, ping, nslookup
- Optional: dhclient (isc-dhcp-client), sudo
"""
import logging
import os
import shutil
import subprocess

logger = logging.getLogger(__name__)


def run_command(cmd, timeout=10, input_text=None):
    """Run a command (argv list) with timeout and error handling"""
    try:
        result = subprocess.run(cmd, capture_output=True, text=True,
                                timeout=timeout, input=input_text)
        return {
            'success': result.returncode == 0,
            'stdout': result.stdout.strip(),
            'stderr': result.stderr.strip(),
            'returncode': result.returncode,
            'command': cmd
        }
    except subprocess.TimeoutExpired:
        logger.debug(f"Command timed out after {timeout}s: {cmd}")
        return {'success': False, 'error': 'Command timeout', 'stdout': '', 'stderr': '', 'command': cmd}
    except OSError as e:
        logger.debug(f"Command could not be started: {cmd} ({e})")
        return {'success': False, 'error': str(e), 'stdout': '', 'stderr': '', 'command': cmd}


def command_exists(name):
    """Return True if an executable is on PATH"""
    return shutil.which(name) is not None


def is_root():
    return hasattr(os, "geteuid") and os.geteuid() == 0


def privileged(cmd, use_sudo=True):
    """Prefix a command with non-interactive sudo unless we already run as root"""
    if use_sudo and not is_root():
        return ["sudo", "-n"] + list(cmd)
    return list(cmd)
