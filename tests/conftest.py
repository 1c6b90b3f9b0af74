"""
Shared fixtures: deployment settings, config files and the synthesized stack.
"""
import aws_cdk as cdk
import pytest
from aws_cdk.assertions import Template

from stacks.config import DEFAULT_CONFIG_PATH, WordpressConfig, load_config
from stacks.wordpress_stack import WordpressStack

TEST_ENV = cdk.Environment(account="123456789012", region="us-east-1")


def _synth(config: WordpressConfig) -> Template:
    app = cdk.App()
    stack = WordpressStack(app, "TestWordpressStack", config=config, env=TEST_ENV)
    return Template.from_stack(stack)


@pytest.fixture(scope="session")
def config() -> WordpressConfig:
    return load_config()


@pytest.fixture(scope="session")
def template(config) -> Template:
    return _synth(config)


@pytest.fixture
def synth():
    """Synthesize a WordpressStack from the given settings and return its template."""
    return _synth


@pytest.fixture
def write_config(tmp_path):
    """Copy the default config.xml with text replacements applied; return its path."""

    def _write(**replacements):
        text = DEFAULT_CONFIG_PATH.read_text(encoding="utf-8")
        for old, new in replacements.values():
            assert old in text, old
            text = text.replace(old, new)
        path = tmp_path / "config.xml"
        path.write_text(text, encoding="utf-8")
        return path

    return _write
