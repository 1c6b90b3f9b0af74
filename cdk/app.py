#!/usr/bin/env python3
"""
CDK app: WordPress on Fargate
Deploy with: cdk deploy
"""
import os
from dataclasses import replace

import aws_cdk as cdk
from stacks.config import load_config
from stacks.wordpress_stack import WordpressStack


def build(app: cdk.App) -> WordpressStack:
    # Configuration: cdk/config.xml, override via CDK context or environment
    config = load_config(
        app.node.try_get_context("configFile") or os.getenv("WORDPRESS_CONFIG")
    )
    domain_name = app.node.try_get_context("domainName") or os.getenv("WORDPRESS_DOMAIN_NAME")
    if domain_name:
        config = replace(config, site=replace(config.site, domain_name=domain_name))

    env = cdk.Environment(
        account=app.node.try_get_context("account")
        or os.getenv("CDK_DEFAULT_ACCOUNT")
        or config.environment.account,
        region=app.node.try_get_context("region")
        or os.getenv("CDK_DEFAULT_REGION")
        or config.environment.region,
    )

    return WordpressStack(app, "WordpressStack", config=config, env=env)


if __name__ == "__main__":
    app = cdk.App()
    build(app)
    app.synth()
