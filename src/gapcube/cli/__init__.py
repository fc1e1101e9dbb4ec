"""Programmatic entry points behind ``scripts/run_stack_pipeline.py``."""

from gapcube.cli.run_stack import load_user_config_dict, build_config, run_stack_pipeline

__all__ = ['load_user_config_dict', 'build_config', 'run_stack_pipeline']
