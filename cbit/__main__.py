#!/usr/bin/env python3
from cbit.cli import cbit_compile

if __name__ == "__main__":
    cbit_compile._parse_cli_args()
