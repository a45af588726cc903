"""Main module for fotos-sync."""

import argparse
import logging
import os
import signal
import sys
import threading
from logging.handlers import RotatingFileHandler
from typing import Callable, List, Optional

from tabulate import tabulate

from fotos_sync.albums import AlbumService
from fotos_sync.cloud.api_client import ApiClient
from fotos_sync.cloud.object_store import ObjectStore
from fotos_sync.config import AppConfig
from fotos_sync.database.record_store import RecordStore
from fotos_sync.ftp.server import FtpIngressServer
from fotos_sync.ingest.pipeline import IngestionPipeline
from fotos_sync.models import ImageStreamEvent, Result
from fotos_sync.photos import PhotoService
from fotos_sync.sync.engine import SyncEngine
from fotos_sync.utils.auth import AuthService
from fotos_sync.utils.network import ConnectivityProbe

logger = logging.getLogger(__name__)


def log_event(event: ImageStreamEvent) -> None:
    """Default image-stream sink: log the event."""
    logger.info("image-stream %s", event.to_dict())


class FotosApp:
    """Wires the record store, sync engine, ingestion pipeline and FTP server."""

    def __init__(
        self,
        config: AppConfig,
        emit: Callable[[ImageStreamEvent], None] = log_event,
        is_online: Optional[Callable[[], bool]] = None,
    ):
        """Initialize the application."""
        self.config = config
        self.store = RecordStore(config)
        self.is_online = is_online or ConnectivityProbe(config.server_url)
        self.api = ApiClient(config.server_url, self._auth_token, timeout=config.request_timeout)
        self.object_store = ObjectStore(
            config.cloudinary, folder=config.cloud_folder, url_prefix=config.cloud_url_prefix
        )
        self.sync_engine = SyncEngine(
            self.store,
            self.api,
            self.object_store,
            self.is_online,
            emit=emit,
            retry_attempts=config.retry_attempts,
            retry_base_delay=config.retry_base_delay,
        )
        self.pipeline = IngestionPipeline(config, self.store, self.sync_engine, emit)
        self.ftp = FtpIngressServer(config, self.pipeline, self.sync_engine)
        self.albums = AlbumService(
            config, self.store, self.api, self.sync_engine, on_photo_removed=self.pipeline.forget
        )
        self.photos = PhotoService(
            self.store, self.api, self.sync_engine, on_photo_removed=self.pipeline.forget
        )
        self.auth = AuthService(self.store, self.api, self.is_online)

    def _auth_token(self) -> Optional[str]:
        user = self.store.load_user()
        return user.auth_token if user else None

    def startup(self) -> None:
        """Prepare the data directory and load the saved FTP password."""
        self.store.ensure_structure()
        self.ftp.load_password()
        logger.info("fotos-sync data directory: %s", self.config.data_dir)

    def shutdown(self) -> None:
        self.ftp.close()
        self.pipeline.reset()


def configure_logging(config: AppConfig, verbose: bool = False) -> None:
    """Log to the console and to a rotating file in the data root."""
    level = logging.DEBUG if verbose else logging.INFO
    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")

    root = logging.getLogger()
    root.setLevel(level)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)

    try:
        os.makedirs(config.log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(config.log_dir, "fotos_sync.log"), maxBytes=1_000_000, backupCount=3
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
    except OSError as e:
        logger.warning("File logging disabled: %s", e)


def print_result(result: Result) -> int:
    """Print a command result and map it to an exit code."""
    if result.success:
        print(result.message or "OK")
        return 0
    print(f"Error: {result.error or result.message}", file=sys.stderr)
    return 1


def parse_arguments(argv: Optional[List[str]] = None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="fotos-sync: FTP photo ingestion with cloud sync")

    parser.add_argument("--data-dir", type=str, help="Application data directory")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Commands", required=True)

    serve_parser = subparsers.add_parser("serve", help="Serve an album over FTP and ingest uploads")
    serve_parser.add_argument("album", type=str, help="Album name")
    serve_parser.add_argument("directory", type=str, help="Directory used as the FTP root")
    serve_parser.add_argument("--username", type=str, default="camera", help="FTP username")
    serve_parser.add_argument("--cloud-sync", action="store_true", help="Upload photos as they arrive")

    albums_parser = subparsers.add_parser("albums", help="Manage albums")
    album_commands = albums_parser.add_subparsers(dest="album_command", required=True)
    album_list = album_commands.add_parser("list", help="List albums")
    album_list.add_argument("--cloud", action="store_true", help="Refresh from the cloud first")
    album_create = album_commands.add_parser("create", help="Create an album")
    album_create.add_argument("name", type=str, help="Album name")
    album_create.add_argument("date", type=str, help="Album date (YYYY-MM-DD)")
    album_delete = album_commands.add_parser("delete", help="Delete an album and its photos")
    album_delete.add_argument("album_id", type=str, help="Album ID")

    photos_parser = subparsers.add_parser("photos", help="Manage photos")
    photo_commands = photos_parser.add_subparsers(dest="photo_command", required=True)
    photo_list = photo_commands.add_parser("list", help="List an album's photos")
    photo_list.add_argument("album", type=str, help="Album name")
    photo_list.add_argument("--cloud", action="store_true", help="Refresh from the cloud first")
    photo_sync = photo_commands.add_parser("sync", help="Upload an album's local photos")
    photo_sync.add_argument("album", type=str, help="Album name")
    photo_delete = photo_commands.add_parser("delete", help="Delete photos by ID")
    photo_delete.add_argument("photo_ids", nargs="+", help="Photo IDs")

    subparsers.add_parser("sync", help="Drain the pending-operations queue")
    subparsers.add_parser("queue", help="Show pending operations")

    login_parser = subparsers.add_parser("login", help="Log in to the backend")
    login_parser.add_argument("email", type=str, help="Account email")
    login_parser.add_argument("password", type=str, help="Account password")

    subparsers.add_parser("logout", help="Forget the stored session")

    return parser.parse_args(argv)


def serve(app: FotosApp, args) -> int:
    """Run the FTP server for one album until interrupted."""
    album = app.albums.find_album_by_name(args.album)
    user = app.store.load_user()
    if album is None:
        print(f"Error: no album named {args.album!r}", file=sys.stderr)
        return 1
    if user is None or not user.auth_token:
        print("Error: please log in first", file=sys.stderr)
        return 1

    result = app.ftp.start(
        args.username, args.directory, album.id, album.name, user.auth_token, args.cloud_sync
    )
    if not result.success:
        return print_result(result)

    print(tabulate([result.data], headers="keys", tablefmt="psql"))
    stop = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: stop.set())
    signal.signal(signal.SIGTERM, lambda *_: stop.set())
    stop.wait()
    app.shutdown()
    return 0


def run_command(app: FotosApp, args) -> int:
    """Dispatch a parsed command."""
    if args.command == "serve":
        return serve(app, args)

    if args.command == "albums":
        if args.album_command == "list":
            albums = app.albums.get_albums(force_cloud_sync=args.cloud)
            rows = [[a.id, a.name, a.date, a.cloud_cover_image_url or ""] for a in albums]
            print(tabulate(rows, headers=["ID", "Name", "Date", "Cover URL"], tablefmt="psql"))
            return 0
        if args.album_command == "create":
            return print_result(app.albums.create_album(args.name, args.date))
        return print_result(app.albums.delete_album(args.album_id))

    if args.command == "photos":
        if args.photo_command == "list":
            photos = app.photos.fetch_photos(args.album, cloud_sync=args.cloud)
            rows = [[p.id, p.local_image_uri, p.cloud_image_url or "", p.created_at] for p in photos]
            print(tabulate(rows, headers=["ID", "Local", "Cloud", "Created"], tablefmt="psql"))
            print(f"\nTotal photos: {len(rows)}")
            return 0
        if args.photo_command == "sync":
            album = app.albums.find_album_by_name(args.album)
            synced = app.sync_engine.sync_photos_to_cloud(args.album, album.id if album else None)
            print(f"Synced {len(synced)} photos")
            return 0
        return print_result(app.photos.bulk_delete_photos(args.photo_ids))

    if args.command == "sync":
        return print_result(app.sync_engine.sync_albums())

    if args.command == "queue":
        rows = [[op.id, op.kind.value, op.enqueued_at, op.payload] for op in app.store.load_queue()]
        print(tabulate(rows, headers=["ID", "Action", "Enqueued", "Payload"], tablefmt="psql"))
        return 0

    if args.command == "login":
        return print_result(app.auth.login(args.email, args.password))

    if args.command == "logout":
        return print_result(app.auth.logout())

    return 1


def main() -> None:
    """Main entry point for the fotos-sync CLI."""
    args = parse_arguments()
    config = AppConfig.from_env(data_root=args.data_dir)
    configure_logging(config, verbose=args.verbose)

    app = FotosApp(config)
    app.startup()
    sys.exit(run_command(app, args))


if __name__ == "__main__":
    main()
