"""
CLI entry point, when used as a module: `python -m vmgate`.

Useful for debugging in the IDEs (use the start-mode "Module", module "vmgate").
"""
from vmgate import cli

if __name__ == '__main__':
    cli.main()
