"""Configuration module for the COD settlement reconciliation service."""

import logging
import os
from functools import lru_cache
from typing import Optional

import boto3
from aws_lambda_powertools.logging import Logger
from botocore.exceptions import BotoCoreError
from dotenv import load_dotenv
from mypy_boto3_s3 import S3Client
from mypy_boto3_ssm import SSMClient

from exceptions import AuthError

load_dotenv()

AWS_PROFILE = os.getenv("AWS_PROFILE")
AWS_REGION = os.getenv("AWS_REGION")
STAGE = os.getenv("STAGE")

SHOPIFY_STORE_DOMAIN = os.getenv("SHOPIFY_STORE_DOMAIN", "")
SHOPIFY_API_VERSION = os.getenv("SHOPIFY_API_VERSION", "2024-10")
SHIPROCKET_BASE_URL = os.getenv("SHIPROCKET_BASE_URL", "https://apiv2.shiprocket.in")

WORKBOOK_PATH = os.getenv("WORKBOOK_PATH", "./tmp/reconciliation.xlsx" if STAGE == "dev" else "/tmp/reconciliation.xlsx")
WORKBOOK_S3_BUCKET = os.getenv("WORKBOOK_S3_BUCKET")
WORKBOOK_S3_KEY = os.getenv("WORKBOOK_S3_KEY", "reconciliation/reconciliation.xlsx")

RECONCILE_DEADLINE_SECONDS = float(os.getenv("RECONCILE_DEADLINE_SECONDS", "28"))
VIEW_DEADLINE_SECONDS = float(os.getenv("VIEW_DEADLINE_SECONDS", "24"))
DATASET_CACHE_TTL_SECONDS = int(os.getenv("DATASET_CACHE_TTL_SECONDS", "300"))
HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "10"))
SHIPROCKET_TOKEN_TTL_SECONDS = int(os.getenv("SHIPROCKET_TOKEN_TTL_SECONDS", str(24 * 60 * 60)))

logger: Logger = Logger()

for name in ['boto', 'urllib3', 's3transfer', 'boto3', 'botocore', 'nose']:
    logging.getLogger(name).setLevel(logging.CRITICAL)

if STAGE == "dev" and AWS_PROFILE:
    session = boto3.session.Session(profile_name=AWS_PROFILE, region_name=AWS_REGION)
else:
    session = boto3.session.Session(region_name=AWS_REGION)


@lru_cache(maxsize=1)
def get_s3_client() -> S3Client:
    return session.client("s3")


@lru_cache(maxsize=1)
def get_ssm_client() -> SSMClient:
    return session.client("ssm")


def fetch_parameter(name: str) -> str:
    """Fetches a single parameter from AWS SSM Parameter Store."""
    ssm_client = get_ssm_client()
    try:
        response = ssm_client.get_parameter(Name=name, WithDecryption=True)
        return response["Parameter"]["Value"]
    except ssm_client.exceptions.ParameterNotFound as e:
        logger.error("Parameter not found in SSM.", parameter=name)
        raise ValueError("Parameter not found in SSM.") from e
    except ssm_client.exceptions.ClientError as e:
        logger.error("Error fetching parameter", parameter=name)
        raise RuntimeError("Error fetching parameter") from e


def get_secret(env_name: str) -> Optional[str]:
    """
    Resolve a secret from the environment.

    ``<env_name>_PATH`` takes precedence and names an SSM parameter; otherwise the
    plain ``<env_name>`` variable is used. Returns None when neither is set.

    Raises:
        AuthError: if the SSM parameter is missing or cannot be read.
    """
    parameter_path = os.getenv(f"{env_name}_PATH")
    if parameter_path:
        try:
            return fetch_parameter(parameter_path)
        except (ValueError, RuntimeError, BotoCoreError) as exc:
            raise AuthError(f"Could not read {env_name} from SSM parameter {parameter_path}: {exc}") from exc
    value = os.getenv(env_name)
    return value or None
