from tickstream.main import run

run()
