import boto3
from botocore.exceptions import ClientError

NO_UPDATES_MESSAGE = "No updates are to be performed"


def aws_client(service_name: str, region: str):
    return boto3.client(service_name, region_name=region)


def error_code(exc: ClientError) -> str:
    return exc.response.get("Error", {}).get("Code", "")


def error_message(exc: ClientError) -> str:
    return exc.response.get("Error", {}).get("Message", "") or str(exc)


def is_no_updates_error(exc: ClientError) -> bool:
    # CloudFormation answers a no-op update with a 400 ValidationError
    return NO_UPDATES_MESSAGE in error_message(exc)
