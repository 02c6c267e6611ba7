"""Matrix output: JSON, YAML, and GitHub Actions step output."""

from matrix_splitter.reporting.matrix_writer import matrix_to_dict, write_github_output, write_json, write_yaml

__all__ = [
    "matrix_to_dict",
    "write_github_output",
    "write_json",
    "write_yaml",
]
