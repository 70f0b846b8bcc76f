from guessroom import create_app, run_housekeeping, socketio

app = create_app()

if __name__ == '__main__':
    socketio.start_background_task(run_housekeeping, app)
    # Use SocketIO server to enable websockets in dev
    socketio.run(app, debug=True)
