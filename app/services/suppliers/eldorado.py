"""
Eldorado SFTP: product feed is a TSV file on the supplier host; orders are uploaded as TSV files.

paramiko is blocking, so every session runs in a worker thread under asyncio.wait_for.
"""
import asyncio
import csv
import io
import logging
from contextlib import contextmanager

import paramiko

from app.config import settings
from app.services.errors import SupplierFetchError, SupplierSubmissionError
from app.services.suppliers.base import FeedItem, SupplierAdapter, normalize_feed

logger = logging.getLogger(__name__)

ORDER_DIR = "/orders"


def parse_tsv(body: str) -> list[dict]:
    text = body.replace("\r\n", "\n").replace("\r", "\n")
    return list(csv.DictReader(io.StringIO(text), delimiter="\t"))


def build_order_tsv(payload: dict) -> str:
    out = io.StringIO()
    writer = csv.writer(out, delimiter="\t", lineterminator="\n")
    writer.writerow(["order_id", "sku", "quantity"])
    for item in payload.get("items", []):
        writer.writerow([payload["orderId"], item["supplierSku"], item["quantity"]])
    return out.getvalue()


class EldoradoAdapter(SupplierAdapter):
    name = "eldorado"

    def __init__(self, supplier_name: str, credentials=None, host: str = None, port: int = None):
        super().__init__(supplier_name, credentials)
        self.host = self.credentials.get("host") or host or settings.ELDORADO_SFTP_HOST
        self.port = int(self.credentials.get("port") or port or settings.ELDORADO_SFTP_PORT)
        self.feed_path = self.credentials.get("feedPath") or settings.ELDORADO_FEED_PATH
        self.timeout = settings.SUPPLIER_SFTP_TIMEOUT

    @contextmanager
    def _sftp(self):
        username = self.credentials.get("username")
        password = self.credentials.get("password")
        if not username or not password:
            raise SupplierFetchError("Eldorado SFTP credentials not configured")
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(
                self.host,
                port=self.port,
                username=username,
                password=password,
                timeout=self.timeout,
                banner_timeout=self.timeout,
                auth_timeout=self.timeout,
                allow_agent=False,
                look_for_keys=False,
            )
            sftp = client.open_sftp()
            sftp.get_channel().settimeout(self.timeout)
            try:
                yield sftp
            finally:
                sftp.close()
        finally:
            client.close()

    def _download_feed(self) -> str:
        with self._sftp() as sftp:
            with sftp.open(self.feed_path, "r") as fh:
                return fh.read().decode("utf-8", errors="replace")

    def _upload_order(self, payload: dict) -> str:
        remote = f"{ORDER_DIR}/{payload['orderId']}.tsv"
        with self._sftp() as sftp:
            with sftp.open(remote, "w") as fh:
                fh.write(build_order_tsv(payload))
        return remote

    async def _run(self, func, *args):
        return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=self.timeout)

    async def fetch_catalog(self) -> list[FeedItem]:
        try:
            body = await self._run(self._download_feed)
        except SupplierFetchError:
            raise
        except (paramiko.SSHException, OSError, asyncio.TimeoutError) as e:
            raise SupplierFetchError(f"Eldorado SFTP download failed: {e}") from e
        rows = parse_tsv(body)
        items = normalize_feed(rows)
        logger.info("Eldorado feed: %s rows, %s usable", len(rows), len(items))
        return items

    async def test_connection(self) -> dict:
        def _stat():
            with self._sftp() as sftp:
                return sftp.stat(self.feed_path).st_size

        try:
            size = await self._run(_stat)
        except (SupplierFetchError, paramiko.SSHException, OSError, asyncio.TimeoutError) as e:
            return {"success": False, "message": f"SFTP connection failed: {e}"}
        return {"success": True, "message": f"Connected; feed file is {size} bytes"}

    async def submit_order(self, payload: dict) -> dict:
        try:
            remote = await self._run(self._upload_order, payload)
        except SupplierFetchError as e:
            raise SupplierSubmissionError(self.supplier_name, str(e), retryable=False) from e
        except (paramiko.SSHException, OSError, asyncio.TimeoutError) as e:
            raise SupplierSubmissionError(self.supplier_name, f"SFTP upload failed: {e}") from e
        return {"success": True, "file": remote}
