#!/usr/bin/env python3
"""Add deterministic sample doctors to the configured store.

Usage: python seed_doctors.py --count 20 --seed 7
Uses MongoDB when MONGODB_URI is set, otherwise the JSON data file.
Names, specialties and clinic towns are picked with a seeded RNG so runs
with the same seed produce the same doctors.
"""
import argparse
import logging
import random

from config import configure_logging, load_settings
from models import new_doctor
from storage import build_store

logger = logging.getLogger(__name__)

FIRST_NAMES = [
    'Priya', 'Amit', 'Suman', 'Neha', 'Karan', 'Pooja', 'Vikram', 'Anita', 'Ritu', 'Siddharth',
    'Isha', 'Rahul', 'Meera', 'Kavita', 'Ramesh'
]
LAST_NAMES = [
    'Ramdin', 'Jeebun', 'Appadoo', 'Mahadoor', 'Ramgoolam', 'Beeharry', 'Lallmahomed', 'Seewoo',
    'Gopaul', 'Bhujun', 'Chung', 'Ah-Kee', 'Perrine', 'Dookhun', 'Teeluck'
]
SPECIALTIES = ['General Medicine', 'Cardiology', 'Pediatrics', 'Orthopedics', 'Dermatology',
               'Gynecology', 'Neurology', 'ENT']

# (town, lat, lng)
TOWNS = [
    ('Port Louis', -20.1609, 57.5012),
    ('Rose Hill', -20.2324, 57.4709),
    ('Curepipe', -20.3163, 57.5259),
    ('Quatre Bornes', -20.2654, 57.4791),
    ('Vacoas', -20.2981, 57.4783),
    ('Mahebourg', -20.4081, 57.7000),
    ('Goodlands', -20.0350, 57.6431),
    ('Flacq', -20.1897, 57.7144),
    ('Bambous', -20.2567, 57.4063),
    ('Triolet', -20.0550, 57.5453),
]


def make_doctors(count, seed=0):
    """Registration payloads for `count` doctors; same seed, same doctors."""
    rnd = random.Random(seed)
    payloads = []
    for idx in range(1, count + 1):
        fn = rnd.choice(FIRST_NAMES)
        ln = rnd.choice(LAST_NAMES)
        town, lat, lng = rnd.choice(TOWNS)
        # spread clinics up to ~2 km around the town centre
        lat = round(lat + rnd.uniform(-0.02, 0.02), 5)
        lng = round(lng + rnd.uniform(-0.02, 0.02), 5)
        payloads.append({
            'name': f"Dr. {fn} {ln}",
            'email': f"{fn.lower()}.{ln.lower().replace('-', '')}{seed}{idx}@example.com",
            'phone': f"+2305{rnd.randint(0, 9999999):07d}",
            'licenseNumber': f"LIC{seed:02d}{idx:04d}",
            'specialty': rnd.choice(SPECIALTIES),
            'experience': rnd.randint(1, 30),
            'clinicAddress': f"{town}, Mauritius",
            'availableHours': rnd.choice(['8 AM - 4 PM', '9 AM - 5 PM', '10 AM - 6 PM']),
            'location': {'lat': lat, 'lng': lng},
            'password': f"seed-{seed}-{idx}",
        })
    return payloads


def main(argv=None):
    parser = argparse.ArgumentParser(description='Seed sample doctors into the configured store')
    parser.add_argument('--count', type=int, default=10, help='number of doctors to add')
    parser.add_argument('--seed', type=int, default=0, help='random seed')
    args = parser.parse_args(argv)

    settings = load_settings()
    configure_logging(settings.log_level)
    store = build_store(settings)

    added = 0
    for payload in make_doctors(args.count, args.seed):
        if store.find_doctor_by_email(payload['email']):
            logger.info('Skipping %s (already present)', payload['email'])
            continue
        store.add_doctor(new_doctor(payload))
        added += 1
    print(f'Added {added} doctors (seed {args.seed})')
    return added


if __name__ == '__main__':
    main()
