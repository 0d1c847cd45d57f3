"""
CLI runner for the uvacheck engine.

This module provides the main CLI entry point for loading the C# adapter,
parsing files, running rules, and outputting results.
"""

import argparse
import concurrent.futures
import fnmatch
import json
import logging
import os
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .cancellation import CancellationToken
from .config import EngineConfig, find_config_file, load_config
from .errors import OperationCancelled, ParserUnavailable
from .registry import discover_rules, get_adapter_for_file, get_rule_ids, get_rules_for_language, register_adapter
from .schema import ENGINE_VERSION, PROTOCOL_VERSION, diagnostics_to_json, validate_runner_output
from .symbols import build_symbol_table
from .types import Diagnostic, MatchMode, RuleContext

logger = logging.getLogger(__name__)

RULE_PACKAGES = ["uvacheck.rules"]

# Exit statuses
EXIT_CLEAN = 0
EXIT_FINDINGS = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130


def setup_adapters():
    """Set up and register language adapters."""
    from .csharp_adapter import default_csharp_adapter
    register_adapter(default_csharp_adapter.language_id, default_csharp_adapter)


def is_excluded_path(file_path: str, patterns: List[str]) -> bool:
    """True if ``file_path`` matches any of the glob ``patterns``."""
    posix_path = Path(file_path).as_posix()
    return any(fnmatch.fnmatch(posix_path, pattern) for pattern in patterns)


def collect_files(paths: List[str], exclude: Optional[List[str]] = None) -> List[str]:
    """Collect C# files to analyze from files and directories.

    Missing paths are logged and skipped. Files matching an ``exclude`` glob
    are dropped; the result is absolute, de-duplicated and sorted.
    """
    from .csharp_adapter import default_csharp_adapter

    exclude = exclude or []
    all_files = set()
    for file_path in default_csharp_adapter.list_files(paths):
        abs_path = str(Path(file_path).absolute())
        if not is_excluded_path(abs_path, exclude):
            all_files.add(abs_path)
    return sorted(all_files)


def analyze_file(file_path: str, rules: List, config: EngineConfig,
                 cancellation: Optional[CancellationToken] = None,
                 content: Optional[str] = None) -> Tuple[List[Diagnostic], float]:
    """Analyze a single file and return diagnostics and parse time (ms).

    Args:
        file_path: Path to the file (used for diagnostics even if content is provided)
        rules: List of rules to run
        config: Engine configuration
        cancellation: Optional token checked before parsing and by the rules
        content: Optional file content (if None, reads from disk)

    Raises:
        OperationCancelled: carrying the diagnostics this file produced so far
        ParserUnavailable: if the C# grammar cannot be loaded
    """
    if cancellation is not None:
        cancellation.raise_if_cancelled()

    adapter = get_adapter_for_file(file_path)
    if adapter is None:
        logger.warning("No adapter for %s", file_path)
        return [], 0.0

    if content is None:
        try:
            with open(file_path, 'r', encoding='utf-8', errors='replace') as f:
                content = f.read()
        except OSError as e:
            logger.warning("Failed to read %s: %s", file_path, e)
            return [], 0.0

    parse_start = time.time()
    tree = adapter.parse(content)
    parse_time = (time.time() - parse_start) * 1000

    mode = config.mode
    symbols = None
    if mode is MatchMode.SYMBOL and any(rule.requires.symbols for rule in rules):
        symbols = build_symbol_table(tree)
        logger.debug("[symbols] %s: %s", file_path, symbols.get_stats())

    context = RuleContext(
        file_path=file_path,
        text=content,
        tree=tree,
        adapter=adapter,
        config=config,
        symbols=symbols,
        match_mode=mode,
        cancellation=cancellation,
    )

    diagnostics: List[Diagnostic] = []
    for rule in rules:
        try:
            diagnostics.extend(rule.visit(context))
        except OperationCancelled as e:
            raise OperationCancelled(diagnostics + e.diagnostics) from e
        except Exception as e:
            logger.warning("Rule '%s' failed on %s: %s", rule.meta.id, file_path, e)

    if config.max_findings_per_file and len(diagnostics) > config.max_findings_per_file:
        diagnostics = diagnostics[:config.max_findings_per_file]

    return diagnostics, parse_time


def resolve_jobs(requested: int, files_count: int) -> int:
    """Number of workers: ``requested`` if positive, otherwise auto."""
    if requested > 0:
        return requested
    return max(1, min(4, files_count, os.cpu_count() or 1))


def run_analysis(files: List[str], rules: List, config: EngineConfig, jobs: int,
                 cancellation: Optional[CancellationToken] = None) -> Tuple[List[Diagnostic], float, bool]:
    """Run analysis on files with optional parallelization.

    Results are collected in file order regardless of worker scheduling.
    On cancellation (token set, or ``KeyboardInterrupt``) no further files are
    started and the diagnostics produced so far are returned.

    Returns:
        (diagnostics, total parse time in ms, cancelled)
    """
    if cancellation is None:
        cancellation = CancellationToken()

    per_file: List[List[Diagnostic]] = []
    total_parse_time = 0.0
    cancelled = False

    if jobs <= 1:
        # Sequential processing
        try:
            for file_path in files:
                diagnostics, parse_time = analyze_file(file_path, rules, config, cancellation)
                per_file.append(diagnostics)
                total_parse_time += parse_time
        except OperationCancelled as e:
            per_file.append(e.diagnostics)
            cancelled = True
        except KeyboardInterrupt:
            cancellation.cancel()
            cancelled = True
    else:
        # Parallel processing
        executor = concurrent.futures.ThreadPoolExecutor(max_workers=jobs)
        try:
            futures = [executor.submit(analyze_file, file_path, rules, config, cancellation)
                       for file_path in files]
            for future in futures:
                try:
                    diagnostics, parse_time = future.result()
                except OperationCancelled as e:
                    per_file.append(e.diagnostics)
                    cancelled = True
                    break
                per_file.append(diagnostics)
                total_parse_time += parse_time
        except KeyboardInterrupt:
            cancellation.cancel()
            cancelled = True
        finally:
            executor.shutdown(wait=True, cancel_futures=True)

    all_diagnostics: List[Diagnostic] = []
    for diagnostics in per_file:
        all_diagnostics.extend(diagnostics)
    if config.max_total_findings and len(all_diagnostics) > config.max_total_findings:
        all_diagnostics = all_diagnostics[:config.max_total_findings]

    if cancelled:
        logger.warning("Analysis cancelled; reporting %d diagnostic(s) found so far", len(all_diagnostics))
    return all_diagnostics, total_parse_time, cancelled


def build_output(diagnostics: List[Diagnostic], files_count: int, rules_count: int,
                 metrics: Dict[str, float], cancelled: bool = False) -> Dict[str, Any]:
    """Build the protocol v1 output document."""
    return {
        "uvacheck.protocol": PROTOCOL_VERSION,
        "engine_version": ENGINE_VERSION,
        "files_scanned": files_count,
        "rules_run": rules_count,
        "findings": diagnostics_to_json(diagnostics),
        "metrics": metrics,
        "cancelled": cancelled,
    }


def format_output(diagnostics: List[Diagnostic], files_count: int, rules_count: int,
                  metrics: Dict[str, float], format_type: str, cancelled: bool = False) -> str:
    """Format output according to specified format."""
    if format_type == "json":
        output = build_output(diagnostics, files_count, rules_count, metrics, cancelled)
        return json.dumps(output, indent=2)

    elif format_type == "pretty":
        lines = []
        lines.append(f"Scanned {files_count} files with {rules_count} rules")
        lines.append(f"Found {len(diagnostics)} issues")
        if cancelled:
            lines.append("Analysis was cancelled; results are partial")
        lines.append("")

        # Group diagnostics by file
        by_file: Dict[str, List[Diagnostic]] = {}
        for diagnostic in diagnostics:
            by_file.setdefault(diagnostic.file, []).append(diagnostic)

        for file_path, file_diagnostics in sorted(by_file.items()):
            lines.append(file_path)
            for diagnostic in file_diagnostics:
                lines.append(f"  {diagnostic.line}:{diagnostic.column} {diagnostic.severity}: "
                             f"{diagnostic.message} ({diagnostic.rule})")
            lines.append("")

        lines.append("Metrics:")
        lines.append(f"  Parse time: {metrics['parse_ms']:.1f}ms")
        lines.append(f"  Rules time: {metrics['rules_ms']:.1f}ms")
        lines.append(f"  Total time: {metrics['total_ms']:.1f}ms")

        return "\n".join(lines)

    else:
        raise ValueError(f"Unknown format: {format_type}")


def analyze_paths(paths: List[str], config: Optional[EngineConfig] = None,
                  config_path: Optional[str] = None,
                  cancellation: Optional[CancellationToken] = None) -> Dict[str, Any]:
    """
    Library function to analyze paths with the registered rules.

    Args:
        paths: List of file/directory paths to analyze
        config: Engine configuration (default: loaded from ``config_path``)
        config_path: Path to config file (default: auto-detect from the first path)
        cancellation: Optional token to stop the analysis early

    Returns:
        Dictionary in the protocol v1 output format
    """
    total_start = time.time()
    if config is None:
        if not config_path:
            config_path = find_config_file(paths[0] if paths else ".")
        config = load_config(config_path)

    setup_adapters()
    discover_rules(RULE_PACKAGES)
    rules = get_rules_for_language("csharp")
    files = collect_files(paths, config.exclude)

    rules_start = time.time()
    diagnostics, parse_ms, cancelled = run_analysis(
        files, rules, config, resolve_jobs(config.jobs, len(files)), cancellation)
    metrics = {
        "parse_ms": parse_ms,
        "rules_ms": (time.time() - rules_start) * 1000,
        "total_ms": (time.time() - total_start) * 1000,
    }
    return build_output(diagnostics, len(files), len(rules), metrics, cancelled)


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point. Returns the process exit status."""
    parser = argparse.ArgumentParser(
        prog="uvacheck",
        description="Report unused local variables and lambda parameters in C# code",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  uvacheck --paths src/ --format pretty
  uvacheck --paths Program.cs --mode syntactic
  python -m uvacheck.engine.runner --paths src/ --jobs 4 --validate
        """
    )

    parser.add_argument(
        "--paths",
        nargs="+",
        required=True,
        help="Paths to files or directories to analyze"
    )

    parser.add_argument(
        "--format",
        choices=["json", "pretty"],
        default="json",
        help="Output format: json (protocol v1) or pretty (human-readable)"
    )

    parser.add_argument(
        "--mode",
        choices=[m.value for m in MatchMode],
        help="Reference matching: symbol (default) or syntactic"
    )

    parser.add_argument(
        "--jobs",
        type=int,
        help="Number of parallel jobs (0=auto, 1=sequential, N=parallel)"
    )

    parser.add_argument(
        "--config",
        help="Path to configuration file"
    )

    parser.add_argument(
        "--validate",
        action="store_true",
        help="Validate JSON output against schema"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output"
    )

    args = parser.parse_args(argv)

    if args.jobs is not None and args.jobs < 0:
        parser.error("--jobs must be >= 0")

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    total_start = time.time()

    setup_adapters()

    # Load configuration; command-line flags win over the file
    config_path = args.config or find_config_file(args.paths[0])
    config = load_config(config_path)
    if args.mode:
        config.match_mode = MatchMode(args.mode).value
    if args.jobs is not None:
        config.jobs = args.jobs
    logger.info("Using config: %s", config_path or "defaults")

    rules_discovered = discover_rules(RULE_PACKAGES)
    logger.info("Discovered %d rules: %s", rules_discovered, get_rule_ids())
    rules = get_rules_for_language("csharp")

    files = collect_files(args.paths, config.exclude)
    logger.info("Found %d files to analyze", len(files))
    if not files:
        logger.error("No files found to analyze")
        return EXIT_USAGE

    jobs = resolve_jobs(config.jobs, len(files))

    rules_start = time.time()
    try:
        diagnostics, parse_time_ms, cancelled = run_analysis(files, rules, config, jobs)
    except ParserUnavailable as e:
        logger.error("%s", e)
        return EXIT_USAGE
    rules_time_ms = (time.time() - rules_start) * 1000
    total_time_ms = (time.time() - total_start) * 1000

    metrics = {
        "parse_ms": parse_time_ms,
        "rules_ms": rules_time_ms,
        "total_ms": total_time_ms
    }

    output = format_output(diagnostics, len(files), len(rules), metrics, args.format, cancelled)

    # Validate output if requested
    if args.validate and args.format == "json":
        errors = validate_runner_output(json.loads(output))
        if errors:
            print("JSON validation errors:", file=sys.stderr)
            for error in errors:
                print(f"  {error}", file=sys.stderr)
            return EXIT_USAGE

    print(output)

    if cancelled:
        return EXIT_INTERRUPTED
    return EXIT_FINDINGS if diagnostics else EXIT_CLEAN


if __name__ == "__main__":
    sys.exit(main())
