import nox

PYTHON_VERSIONS = ["3.11", "3.12", "3.13"]

nox.options.sessions = ["tests"]


def _pytest(session: nox.Session, *args: str) -> None:
    """Install the project with its test group, then run pytest with ``args``."""
    session.run("poetry", "install", "--with", "test", external=True)
    session.run("pytest", *args, *session.posargs)


@nox.session(python=PYTHON_VERSIONS)
def tests(session: nox.Session) -> None:
    """Whole suite on every supported Python."""
    _pytest(session)


@nox.session(python=PYTHON_VERSIONS[-1])
def tests_domain(session: nox.Session) -> None:
    """Magazine, Order and money rules only; no gateway or HTTP involved."""
    _pytest(session, "-m", "domain")


@nox.session(python=PYTHON_VERSIONS[-1])
def tests_application(session: nox.Session) -> None:
    """Checkout, lifecycle, webhook, refund and sweep services against the fake gateway."""
    _pytest(session, "-m", "application")


@nox.session(python=PYTHON_VERSIONS[-1])
def tests_integration(session: nox.Session) -> None:
    """HTTP endpoints, the Stripe adapter with the SDK patched, and the order scenarios."""
    _pytest(session, "-m", "integration or bdd")


@nox.session(python=PYTHON_VERSIONS[-1])
def sweep(session: nox.Session) -> None:
    """Run the expired-checkout sweep against the configured environment."""
    session.run("poetry", "install", external=True)
    session.run("marketplace-manage", "sweep-expired")
