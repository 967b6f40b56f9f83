"""Slack integration package for the Claude Code bridge.

This package provides the Slack bot implementation using AsyncApp
and AsyncSocketModeHandler from slack-bolt.

Entry point: python -m src.interfaces.slack.bot
"""
