from app import create_app, socketio
from app.services.scores.scheduler import schedule_reconciliation

app = create_app()

if __name__ == '__main__':
    schedule_reconciliation(app)
    # Use SocketIO server to enable websockets in dev
    socketio.run(app, debug=True)
