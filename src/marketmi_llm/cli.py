#!/usr/bin/env python3
"""
Market MI LLM Router CLI
========================

Command-line access to the fallback router for operators.

Usage:
    marketmi-llm status
    marketmi-llm health
    marketmi-llm reset groq
    marketmi-llm ask "Write three taglines for a bakery" --tier fast
    marketmi-llm ask "List 3 leads as JSON" --json
    marketmi-llm diagnose
"""

import argparse
import asyncio
import json
import logging
import sys
import time
from typing import List, Optional

from .config import OrchestratorConfig
from .json_extract import parse_json_from_llm
from .providers import AllProvidersFailedError, FallbackRouter, LLMOptions
from .secrets import check_secrets, load_secrets

DIAGNOSTIC_PROMPT = "Say 'Hello! LLM is working.' in exactly those words."


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S"
    )


def build_router(args) -> FallbackRouter:
    """Load secrets and config, then build a router."""
    load_secrets()
    if args.config:
        config = OrchestratorConfig.from_yaml(args.config)
    else:
        config = OrchestratorConfig.from_env()
    router = FallbackRouter(config=config)
    router.registry.log_startup_report()
    return router


def cmd_status(args):
    """Show providers, eligibility and today's quota."""
    router = build_router(args)
    status = router.get_status()
    
    if args.json:
        print(json.dumps(status, indent=2, default=str))
        return
    
    print("\n" + "=" * 70)
    print("LLM PROVIDER STATUS")
    print("=" * 70)
    
    for info in status["providers"]:
        emoji = "✅" if info["eligible"] else "❌"
        health = "healthy" if info["healthy"] else f"unhealthy ({info['failures']} failures)"
        print(f"  {emoji} {info['name']:<14} {health:<26} "
              f"quota {info['quota_used']}/{info['quota_limit']}")
        if not info["configured"]:
            print("     Not configured (missing API key)")
        elif info["cooldown_until"] and info["cooldown_until"] > time.time() * 1000:
            remaining = (info["cooldown_until"] - time.time() * 1000) / 1000
            print(f"     In cooldown for another {remaining:.0f}s")
    
    print("=" * 70)
    print(f"Eligible: {status['eligible_providers']}/{len(status['providers'])}")
    present = [env_var for env_var, found in check_secrets().items() if found]
    print(f"Keys in environment: {', '.join(present) or 'none'}")
    if status["quota_warning"]:
        print(f"⚠ {status['quota_warning']}")
    print()


def cmd_health(args):
    """Dump persisted health records."""
    router = build_router(args)
    records = router.get_provider_health_status()
    print(json.dumps({name: r.to_dict() for name, r in records.items()}, indent=2))


def cmd_reset(args):
    """Reset one provider's health record."""
    router = build_router(args)
    record = router.reset_provider_health(args.provider)
    print(f"✓ Reset health for {record.provider}")


async def _ask(router: FallbackRouter, args):
    options = LLMOptions(
        tier=args.tier,
        system_prompt=args.system,
        temperature=args.temperature,
        max_tokens=args.max_tokens,
    )
    async with router:
        if args.retry:
            return await router.generate(args.prompt, options)
        return await router.call_llm(args.prompt, options)


def cmd_ask(args):
    """Send one prompt through the fallback chain."""
    router = build_router(args)
    try:
        response = asyncio.run(_ask(router, args))
    except AllProvidersFailedError as e:
        print(f"✗ {e.friendly_message}")
        for entry in e.errors:
            print(f"  - {entry['provider']}: {entry['error'][:120]}")
        sys.exit(2)
    
    if args.json:
        data = parse_json_from_llm(response.text)
        if data is None:
            print("✗ No JSON found in response", file=sys.stderr)
            print(response.text)
            sys.exit(3)
        print(json.dumps(data, indent=2))
    else:
        print(response.text)
    
    logging.info(f"Answered by {response.provider}")


async def _diagnose(router: FallbackRouter):
    async with router:
        start = time.time()
        response = await router.call_llm(DIAGNOSTIC_PROMPT, LLMOptions(tier="fast", max_tokens=50))
        return response, (time.time() - start) * 1000


def cmd_diagnose(args):
    """Run a fixed probe prompt and report which provider answered."""
    router = build_router(args)
    
    if not router.has_free_llm_configured():
        print("✗ No LLM providers configured")
        sys.exit(2)
    
    print(f"Available providers: {', '.join(router.get_available_providers()) or 'none'}")
    
    try:
        response, latency = asyncio.run(_diagnose(router))
    except AllProvidersFailedError as e:
        print(f"✗ All providers failed ({len(e.errors)} attempts)")
        for entry in e.errors:
            print(f"  - {entry['provider']}: {entry['error'][:120]}")
        sys.exit(2)
    
    print(f"✓ {response.provider} answered in {latency:.0f}ms: {response.text.strip()}")
    
    warning = router.get_quota_warning()
    if warning:
        print(f"⚠ {warning}")


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="marketmi-llm",
        description="Multi-provider LLM router with automatic fallback"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    parser.add_argument("-c", "--config", help="YAML config file (default: $MARKETMI_LLM_CONFIG)")
    
    subparsers = parser.add_subparsers(dest="command", help="Commands")
    
    status_parser = subparsers.add_parser("status", help="Show provider status and quota")
    status_parser.add_argument("--json", action="store_true", help="Print raw JSON")
    status_parser.set_defaults(func=cmd_status)
    
    health_parser = subparsers.add_parser("health", help="Show persisted health records")
    health_parser.set_defaults(func=cmd_health)
    
    reset_parser = subparsers.add_parser("reset", help="Reset a provider's health")
    reset_parser.add_argument("provider", help="Provider id (groq, openrouter, huggingface, openai)")
    reset_parser.set_defaults(func=cmd_reset)
    
    ask_parser = subparsers.add_parser("ask", help="Send a prompt")
    ask_parser.add_argument("prompt", help="Prompt text")
    ask_parser.add_argument("-t", "--tier", choices=["fast", "reasoning"], default="fast")
    ask_parser.add_argument("-s", "--system", help="System prompt")
    ask_parser.add_argument("--temperature", type=float)
    ask_parser.add_argument("--max-tokens", type=int)
    ask_parser.add_argument("--json", action="store_true", help="Extract JSON from the reply")
    ask_parser.add_argument("--retry", action="store_true",
                            help="Retry the whole call once if every provider fails")
    ask_parser.set_defaults(func=cmd_ask)
    
    diag_parser = subparsers.add_parser("diagnose", help="Probe the fallback chain")
    diag_parser.set_defaults(func=cmd_diagnose)
    
    args = parser.parse_args(argv)
    
    if args.command is None:
        parser.print_help()
        sys.exit(0)
    
    setup_logging(args.verbose)
    
    try:
        args.func(args)
    except KeyboardInterrupt:
        print("\nAborted.")
        sys.exit(1)
    except (ValueError, FileNotFoundError) as e:
        logging.error(f"Error: {e}")
        if args.verbose:
            raise
        sys.exit(1)


if __name__ == "__main__":
    main()
