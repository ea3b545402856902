"""Application entry point."""
import os
import click
from flask.cli import with_appcontext
from rollcall import create_app, db
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Create Flask app
app = create_app(os.getenv('FLASK_ENV', 'development'))


@app.cli.command()
@with_appcontext
def reset_db():
    """Reset database completely."""
    if click.confirm('This will delete all attendance records and subjects. Continue?'):
        db.drop_all()
        db.create_all()
        click.echo('Database reset complete!')


@app.cli.command()
@with_appcontext
def seed_subjects():
    """Create a few demo subjects."""
    from rollcall.models.subject import Subject

    demo = [
        ('SUBJ-1', 'Introduction to Programming'),
        ('SUBJ-2', 'Data Structures'),
        ('SUBJ-3', 'Computer Networks'),
    ]
    for code, title in demo:
        if not Subject.query.filter_by(code=code).first():
            db.session.add(Subject(code=code, title=title))
    db.session.commit()
    click.echo(f'Seeded {len(demo)} subjects')


if __name__ == '__main__':
    # Development server; threaded so streams and scans are served together
    port = int(os.environ.get('PORT', 5000))
    host = os.environ.get('HOST', '127.0.0.1')
    debug = os.environ.get('FLASK_ENV') == 'development'

    # The reloader would start a second process with its own sessions
    app.run(host=host, port=port, debug=debug, threaded=True, use_reloader=False)
