"""
Training Reports
================

Collects per-epoch training metrics and renders snapshot reports:
- Line charts of train accuracy, train loss and test accuracy (PNG)
- An HTML page summarizing the run next to the charts

A snapshot for epoch index ``n`` lives in ``<output_directory>/<n>/``:

    <n>/report.html
    <n>/static/train accuracy.png
    <n>/static/train loss.png
    <n>/static/test accuracy.png   (only when test data was given)
"""

import html
import logging
import os
import time

import matplotlib.pyplot as plt

log = logging.getLogger(__name__)

CSS = """
body { font-family: sans-serif; margin: 2em; }
.tableBlock table { border-collapse: collapse; margin-bottom: 2em; }
.tableBlock td { border: 1px solid #ccc; padding: 0.3em 1em; }
.imgBlock { display: inline-block; margin: 0.5em; }
"""


def plot_series(output_directory, x, y, x_label, y_label, title, figsize=(6, 4)):
    """
    Plot one metric series as a line chart and save it as ``<title>.png``.

    Args:
        output_directory: Directory the PNG is written to
        x: X values (epochs)
        y: Y values, same length as x
        x_label: X axis label
        y_label: Y axis label
        title: Chart title, also the file name

    Returns:
        Path of the written image
    """
    if len(x) != len(y):
        raise ValueError(f"vectors must have the same length: {len(x)} != {len(y)}")

    fig, ax = plt.subplots(figsize=figsize)

    ax.plot(x, y, 'b-', linewidth=2)
    ax.set_xlabel(x_label, fontsize=12)
    ax.set_ylabel(y_label, fontsize=12)
    ax.set_title(title, fontsize=14)
    ax.grid(True, alpha=0.3)

    plt.tight_layout()

    path = os.path.join(output_directory, f"{title}.png")
    try:
        fig.savefig(path, dpi=100, bbox_inches='tight')
    finally:
        plt.close(fig)

    return path


def images_html(images):
    """HTML blocks for a list of image paths."""
    blocks = []
    for image in images:
        blocks.append(
            '<div class="imgBlock">\n'
            '  <figure>\n'
            f'    <img src="{html.escape(image)}" width="700" height="400" />\n'
            '  </figure>\n'
            '</div>\n'
        )
    return ''.join(blocks)


def summary_html(rows):
    """HTML table from (label, value) pairs."""
    cells = ''.join(
        f"\n\t\t<tr><td>{html.escape(str(label))}</td><td>{html.escape(str(value))}</td></tr>"
        for label, value in rows
    )
    return f'<div class="tableBlock">\n\t<table>{cells}\n\t</table>\n</div>\n'


def full_html(summary, images):
    return (
        "<!DOCTYPE html>\n<html>\n<head>\n<meta charset=\"utf-8\">\n"
        f"<title>Training report</title>\n<style>{CSS}</style>\n</head>\n"
        f"<body>\n{summary}{images}</body>\n</html>\n"
    )


class Report:
    """
    Accumulates per-epoch metrics and writes snapshot reports.

    Args:
        output_directory: Root directory of the snapshots
    """

    def __init__(self, output_directory):
        self.output_directory = output_directory
        self.steps = []
        self.train_accuracies = []
        self.train_losses = []
        self.test_accuracies = []

    def add_data(self, step, train_accuracy, train_loss, test_accuracy=None):
        """Record the metrics of one epoch."""
        self.steps.append(step)
        self.train_accuracies.append(train_accuracy)
        self.train_losses.append(train_loss)
        if test_accuracy is not None:
            self.test_accuracies.append(test_accuracy)

    def generate_plots(self, output_directory, accuracy_function, loss_function):
        """Write the metric charts into output_directory."""
        plot_series(output_directory, self.steps, self.train_accuracies,
                    'epochs', accuracy_function, 'train accuracy')
        plot_series(output_directory, self.steps, self.train_losses,
                    'epochs', loss_function, 'train loss')
        if self.test_accuracies:
            plot_series(output_directory, self.steps, self.test_accuracies,
                        'epochs', accuracy_function, 'test accuracy')

    def generate(self, network_name, start_time, epochs, x_train_shape, y_train_shape,
                 x_test_shape=None, y_test_shape=None, accuracy_function='',
                 loss_function=''):
        """
        Write a snapshot report for the latest recorded epoch.

        Args:
            network_name: Network kind name
            start_time: Training start, as returned by time.time()
            epochs: Total number of epochs of the run
            x_train_shape, y_train_shape: Training data shapes
            x_test_shape, y_test_shape: Test data shapes, if any
            accuracy_function: Accuracy function name
            loss_function: Loss function name

        Returns:
            Path of the written HTML file
        """
        if not self.steps:
            raise ValueError("no data to report, call add_data first")

        step = len(self.steps) - 1
        snapshot_directory = os.path.join(self.output_directory, str(step))
        image_directory = os.path.join(snapshot_directory, 'static')
        os.makedirs(image_directory, exist_ok=True)

        self.generate_plots(image_directory, accuracy_function, loss_function)

        images = ['static/train accuracy.png', 'static/train loss.png']
        if self.test_accuracies:
            images.append('static/test accuracy.png')

        rows = [
            ('Type', network_name),
            ('Duration (s)', int(time.time() - start_time)),
            ('Epochs', f"{step}/{epochs}"),
            ('X Train', tuple(x_train_shape)),
            ('Y Train', tuple(y_train_shape)),
        ]
        if x_test_shape is not None:
            rows.append(('X Test', tuple(x_test_shape)))
        if y_test_shape is not None:
            rows.append(('Y Test', tuple(y_test_shape)))
        rows += [
            ('Accuracy Function', accuracy_function),
            ('Loss Function', loss_function),
            ('Train Accuracy', self.train_accuracies[-1]),
            ('Train Loss', self.train_losses[-1]),
        ]
        if self.test_accuracies:
            rows.append(('Test Accuracy', self.test_accuracies[-1]))

        report_path = os.path.join(snapshot_directory, 'report.html')
        with open(report_path, 'w') as f:
            f.write(full_html(summary_html(rows), images_html(images)))

        log.info(f"Report saved to {report_path}")
        return report_path
