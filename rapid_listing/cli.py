"""Flask CLI commands for workspace maintenance."""
from datetime import date

import click


def register_cli(app):
    @app.cli.command("init-db")
    def init_db():
        """Create all tables and seed the default business profile."""
        from rapid_listing.extensions import db
        from rapid_listing.services import store_service

        db.create_all()
        if store_service.get_item(store_service.PROFILE_KEY) is None:
            store_service.save_profile(store_service.DEFAULT_PROFILE)
        click.echo("Database initialized with default profile.")

    @app.cli.command("export-csv")
    @click.option("--output", "-o", type=click.Path(dir_okay=False), default=None,
                  help="Destination file (defaults to the dated export name)")
    def export_csv(output):
        """Write saved scans as an eBay Seller Hub draft CSV."""
        from rapid_listing.services import export_service, store_service

        scans = store_service.list_scans()
        if not scans:
            click.echo("No saved scans to export.")
            return
        body = export_service.build_ebay_csv(scans, store_service.load_profile())
        output = output or export_service.export_filename(date.today())
        with open(output, "w", encoding="utf-8", newline="") as fh:
            fh.write(body)
        click.echo(f"Exported {len(scans)} scans to {output}")

    @app.cli.command("stats")
    def stats():
        """Show history, draft and storage usage."""
        from rapid_listing.services import store_service

        used, quota = store_service.usage()
        click.echo(f"Saved scans: {len(store_service.list_scans())}")
        click.echo(f"Drafts: {len(store_service.list_drafts())}")
        click.echo(f"Storage: {used:,} / {quota:,} chars ({used / quota:.0%})")
