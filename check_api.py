"""
Simple helper to check a running MyDoctor.mu API.
Run from any shell with:

  python check_api.py --port 5000

It lists doctors and places one emergency call from Port Louis. Pass
--direct to skip the Slack alert.
"""
import argparse
import http.client
import json

DEFAULT_CALL = {'lat': -20.165, 'lng': 57.501, 'name': 'Test User', 'phone': '+23050000000'}


def fetch(host, port, method, path, payload=None):
    conn = http.client.HTTPConnection(host, port, timeout=10)
    try:
        body = json.dumps(payload) if payload is not None else None
        headers = {'Content-Type': 'application/json'} if body else {}
        conn.request(method, path, body=body, headers=headers)
        r = conn.getresponse()
        raw = r.read()
        try:
            text = raw.decode('utf-8')
        except UnicodeDecodeError:
            text = repr(raw)
        return r.status, r.getheader('Content-Type'), text
    finally:
        conn.close()


def main(argv=None):
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument('--host', default='127.0.0.1')
    parser.add_argument('--port', type=int, default=5000)
    parser.add_argument('--direct', action='store_true', help="send mode='direct' (no Slack alert)")
    args = parser.parse_args(argv)

    call = dict(DEFAULT_CALL, mode='direct') if args.direct else DEFAULT_CALL
    requests_to_make = [('GET', '/', None), ('GET', '/api/doctors', None), ('POST', '/api/call-doctor', call)]
    for method, path, payload in requests_to_make:
        print('\nRequesting', method, path)
        try:
            status, ctype, body = fetch(args.host, args.port, method, path, payload)
        except OSError as e:
            print('Error requesting', path, '-', e)
            continue
        print('Status:', status)
        print('Content-Type:', ctype)
        print('Body (first 800 chars):')
        print(body[:800])

    print('\nDone.')


if __name__ == '__main__':
    main()
