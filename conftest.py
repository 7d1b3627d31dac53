import os
import sys
import json
import pathlib

_binds = {}

def audithook(event, args):
    # test servers must listen on ephemeral ports
    if event != 'socket.bind':
        return

    sock, addr = args
    if not isinstance(addr, (list, tuple)):
        return

    if (port := addr[1]) != 0:
        raise RuntimeError(f'socket.bind() to fixed port {port}')

    testname = os.environ.get('PYTEST_CURRENT_TEST')
    _binds.setdefault(testname, []).append(addr[0])

def pytest_sessionstart(session):
    sys.addaudithook(audithook)

def pytest_sessionfinish(session, exitstatus):

    dirn = pathlib.Path('test-reports')
    dirn.mkdir(exist_ok=True)

    filename = dirn / 'socket.bind.json'
    if (workerid := os.environ.get('PYTEST_XDIST_WORKER')) is not None:
        filename = dirn / f'socket.bind.{workerid}.json'

    with filename.open('w') as fp:
        json.dump(_binds, fp, indent=2)
