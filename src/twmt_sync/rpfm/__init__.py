from twmt_sync.rpfm.cli import ExtractResult, RpfmCli, build_rpfm_cli
from twmt_sync.rpfm.output_parser import (
    calculate_timeout,
    filter_localization_files,
    parse_error_message,
    parse_file_list,
)

__all__ = [
    "ExtractResult",
    "RpfmCli",
    "build_rpfm_cli",
    "calculate_timeout",
    "filter_localization_files",
    "parse_error_message",
    "parse_file_list",
]
