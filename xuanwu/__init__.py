"""Xuanwu Factory deployment orchestration service."""
