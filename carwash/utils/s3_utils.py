import boto3
import os
from botocore.exceptions import NoCredentialsError
from urllib.parse import urlparse

ALLOWED_RECEIPT_EXTENSIONS = {"png", "jpg", "jpeg", "webp", "pdf"}


def _client():
    return boto3.client(
        "s3",
        aws_access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
        aws_secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
        region_name=os.getenv("AWS_REGION"),
    )


def allowed_receipt(filename):
    return "." in filename and filename.rsplit(".", 1)[1].lower() in ALLOWED_RECEIPT_EXTENSIONS


def upload_file_to_s3(file, filename, bucket_name):
    s3 = _client()
    try:
        s3.upload_fileobj(
            file,
            bucket_name,
            filename,
            ExtraArgs={"ContentType": file.content_type or "application/octet-stream"},
        )
        base_url = os.getenv("S3_BASE_URL")
        return f"{base_url}/{filename}"

    except NoCredentialsError:
        raise Exception("AWS credentials not found. Check environment variables.")


def delete_file_from_s3(file_url, bucket_name):
    s3 = _client()

    try:
        key = urlparse(file_url).path.lstrip("/")
        s3.delete_object(Bucket=bucket_name, Key=key)
        return True

    except NoCredentialsError:
        raise Exception("AWS credentials not found. Check environment variables.")
    except Exception as e:
        print(f"Error deleting file from S3: {e}")
        return False
