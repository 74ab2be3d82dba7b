#!/usr/bin/env python3
"""Backup runner for cron or manual use"""
import sys
from tarkeeper.cli import main

if __name__ == '__main__':
    sys.exit(main())
