import click
from flask.cli import FlaskGroup

from certflow.app import create_app, db
from certflow.certgen import certificate_data_for, render_certificate
from certflow.models import Submission
from certflow.services.certificate_workflow import run_transition
from certflow.shared.certificate_status import ISSUED, current_status
from certflow.shared.errors import CertificateError
from certflow.shared.storage import save_certificate


cli = FlaskGroup(create_app=create_app)


@cli.command("init_db")
def init_db():
    """Create the submissions and interns tables."""
    db.create_all()
    click.echo("Tables created")


@cli.command("gen_cert")
@click.option("--feedback", "feedback_id", required=True, type=int)
@click.option("--out", "out_path", required=True, type=click.Path(dir_okay=False))
def gen_cert(feedback_id: int, out_path: str):
    """Render the certificate of an issued submission to a file."""
    submission = db.session.get(Submission, feedback_id)
    if not submission:
        raise click.ClickException("Not found")
    if current_status(submission.certificate_status) != ISSUED or not submission.certificate_number:
        raise click.ClickException("Certificate not issued")
    try:
        pdf_bytes = render_certificate(
            certificate_data_for(submission, submission.certificate_number)
        )
    except CertificateError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(save_certificate(out_path, pdf_bytes))


@cli.command("set_status")
@click.option("--feedback", "feedback_id", required=True, type=int)
@click.option(
    "--status",
    "status",
    required=True,
    type=click.Choice(["issued", "rejected", "pending"], case_sensitive=False),
)
@click.option("--reason", "reason", default=None, help="Rejection reason")
def set_status(feedback_id: int, status: str, reason: str | None):
    """Run a certificate status transition from the command line."""
    try:
        outcome = run_transition(feedback_id, status, reason)
    except CertificateError as exc:
        raise click.ClickException(f"{type(exc).__name__}: {exc}") from exc
    for result in outcome.results:
        state = "ok" if result.ok else "failed"
        click.echo(f"{result.stage}: {state} {result.detail}".rstrip())
    snapshot = outcome.snapshot
    click.echo(
        f"status={snapshot['certificateStatus']} number={snapshot['certificateNumber'] or ''}"
    )


if __name__ == "__main__":
    cli()
