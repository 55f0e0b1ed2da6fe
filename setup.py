from setuptools import setup
import os

PROJECT_ROOT, _ = os.path.split(__file__)
PROJECT_AUTHORS = 'Ken Conley'
PROJECT_EMAILS = ['kwc@willowgarage.com']
REVISION = '0.1.0'
PROJECT_NAME = 'python-bamboo'
SHORT_DESCRIPTION = (
  'Python Bamboo is a python wrapper for the Bamboo REST API which aims to provide a more conventionally pythonic way '
  'of querying build results and managing build plans on a Bamboo server.'
)

try:
    DESCRIPTION = open(os.path.join(PROJECT_ROOT, 'README.rst')).read()
except IOError:
    DESCRIPTION = SHORT_DESCRIPTION


def read_requirements(name):
    with open(os.path.join(PROJECT_ROOT, name)) as f:
        return [line.strip() for line in f if line.strip()]


setup(
    name=PROJECT_NAME.lower(),
    version=REVISION,
    author=PROJECT_AUTHORS,
    author_email=PROJECT_EMAILS,
    packages=[
        'bamboo'],
    zip_safe=True,
    include_package_data=False,
    install_requires=read_requirements('requirements.txt'),
    extras_require={
        'test': read_requirements('test-requirements.txt'),
    },
    description=SHORT_DESCRIPTION,
    long_description=DESCRIPTION,
    license='BSD',
    classifiers=[
        'Topic :: Utilities',
        'Intended Audience :: Developers',
        'Intended Audience :: Information Technology',
        'Intended Audience :: System Administrators',
        'Environment :: Console',
        'License :: OSI Approved :: BSD License',
        'Operating System :: OS Independent',
        'Programming Language :: Python',
        'Programming Language :: Python :: 3',
    ],
)
